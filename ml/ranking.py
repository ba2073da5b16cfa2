"""
Turns a classifier's score vector into ranked RawObservations.
"""
from typing import List, Optional, Sequence

import numpy as np

from domain.models import ClassificationOutcome, RawObservation
from ml.config import OTHER_KNOWN_LABELS, UNCLASSIFIED_LABELS, PROB_SUM_TOLERANCE


def softmax(logits):
    """
    Compute softmax probabilities from logits.

    Args:
        logits: Array-like of logit values

    Returns:
        numpy array of probabilities
    """
    logits = np.asarray(logits, dtype=np.float64)
    exp_logits = np.exp(logits - np.max(logits))  # Numerical stability
    return exp_logits / exp_logits.sum()


def outcome_for_label(label: str,
                      other_known: Sequence[str] = OTHER_KNOWN_LABELS,
                      unclassified: Sequence[str] = UNCLASSIFIED_LABELS) -> ClassificationOutcome:
    if label in unclassified:
        return ClassificationOutcome.UNCLASSIFIED
    if label in other_known:
        return ClassificationOutcome.OTHER_KNOWN
    return ClassificationOutcome.RECOGNIZED


def rank_results(scores, labels: Sequence[str],
                 other_known: Sequence[str] = OTHER_KNOWN_LABELS,
                 unclassified: Sequence[str] = UNCLASSIFIED_LABELS,
                 top_k: Optional[int] = None) -> List[RawObservation]:
    """
    Rank classifier scores into observations, most confident first.

    Args:
        scores: Probabilities or logits, one per label (logits are softmaxed
                when they don't sum to ~1)
        labels: Class label for each score
        other_known: Labels for known-but-untracked objects
        unclassified: Labels meaning "nothing recognized"
        top_k: Keep only the best k results (default: all)

    Returns:
        List of RawObservation ordered by descending confidence
    """
    probs = np.asarray(scores, dtype=np.float64).ravel()
    if probs.size != len(labels):
        raise ValueError(f"Expected {len(labels)} scores, got {probs.size}")
    if probs.size == 0:
        return []
    if not np.all(np.isfinite(probs)):
        raise ValueError("Scores must be finite")

    if abs(probs.sum() - 1.0) > PROB_SUM_TOLERANCE:
        probs = softmax(probs)

    order = np.argsort(-probs, kind="stable")
    if top_k is not None:
        order = order[:max(0, int(top_k))]

    results = []
    for idx in order:
        label = labels[int(idx)]
        outcome = outcome_for_label(label, other_known, unclassified)
        results.append(RawObservation(
            raw_confidence=float(probs[idx]),
            outcome=outcome,
            candidate_id=label if outcome is ClassificationOutcome.RECOGNIZED else None,
            payload=label,
        ))
    return results
