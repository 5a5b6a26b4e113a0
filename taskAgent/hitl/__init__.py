"""Human-in-the-loop: approval rules and the review gate."""

from .approval_checker import ApprovalChecker, ApprovalDecision
from .review_gate import HumanReviewGate, ResumeDecision, mutation_id, parse_resume_decision, terminate_review

__all__ = [
    "ApprovalChecker",
    "ApprovalDecision",
    "HumanReviewGate",
    "ResumeDecision",
    "mutation_id",
    "parse_resume_decision",
    "terminate_review",
]
