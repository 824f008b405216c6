"""
Evaluation module.

Provides Mean Reciprocal Rank over a query/answer dataset, and standard
information retrieval metrics for ranking runs through ir_measures.
"""
import logging
import math
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import ir_measures as irms

from .data import DataSet, DataSetItem
from .errors import InvalidDataset


logger = logging.getLogger(__name__)


RankFn = Callable[[str], Sequence[str]]


def reciprocal_rank(label: str, ranked: Sequence[str], policy: str = "zero") -> float:
    """Reciprocal of the 1-based position of the first occurrence of `label`.

    A label that is not ranked is resolved by `policy`:
    "zero" contributes 0, "error" raises InvalidDataset and "unbounded"
    returns infinity (1 / (-1 + 1)).

    Raises:
        InvalidDataset: When the label is missing and policy is "error"
        ValueError: When the policy is unknown
    """
    try:
        position = list(ranked).index(label)
    except ValueError:
        if policy == "zero":
            return 0.0
        if policy == "unbounded":
            return math.inf
        if policy == "error":
            raise InvalidDataset(f"Relevant label {label!r} is not in the ranked list")
        raise ValueError(f"Unknown missing label policy: {policy}")
    return 1.0 / (position + 1)


def item_score(item: DataSetItem, ranked: Sequence[str], policy: str = "zero") -> float:
    """Average reciprocal rank over the item's relevant labels.

    Raises:
        InvalidDataset: When the item has no relevant labels
    """
    if not item.relevant_labels:
        raise InvalidDataset(f"Dataset item has no relevant labels: {item.input[:80]!r}")
    ranked = list(ranked)
    return sum(reciprocal_rank(label, ranked, policy) for label in item.relevant_labels) / len(item.relevant_labels)


def evaluate(dataset: DataSet, rank_fn: RankFn, policy: str = "zero") -> float:
    """Mean Reciprocal Rank of `rank_fn` over `dataset`.

    Args:
        dataset: Non-empty dataset of items with relevant labels
        rank_fn: Maps query text to a ranked list of labels
        policy: Resolution for relevant labels missing from a ranking

    Returns:
        float: The MRR

    Raises:
        InvalidDataset: When the dataset or one of its items is empty
    """
    if not dataset.items:
        raise InvalidDataset("Dataset is empty")

    for position, item in enumerate(dataset.items):
        if not item.relevant_labels:
            raise InvalidDataset(f"Dataset item {position} has no relevant labels")

    total = 0.0
    for item in dataset.items:
        score = item_score(item, rank_fn(item.input), policy)
        logger.debug(f"Reciprocal rank {score:.4f} for query {item.input[:60]!r}")
        total += score

    mrr = total / len(dataset.items)
    logger.debug(f"MRR over {len(dataset.items)} items: {mrr:.4f}")
    return mrr


def evaluate_runs(
    run_dict: Dict[str, List[Tuple[str, float]]],
    qrels: List[Any],  # List[ir_datasets.Qrel]
    measures: Optional[List[str]] = None,
) -> Dict[str, float]:
    """Evaluate ranking runs with standard IR metrics.

    Args:
        run_dict: Mapping from query_id to a ranked list of (doc_id, score)
        qrels: Relevance judgments (ir_datasets qrels or ir_measures.Qrel)
        measures: Metric spec strings (e.g., ["RR", "nDCG@10", "P@10", "AP"])

    Returns:
        Dict[str, float]: Mapping from metric name to aggregate score
    """
    if not run_dict:
        logger.warning("Run is empty, skipping evaluation")
        return {}

    if measures is None:
        measures = ["RR", "nDCG@10", "P@10", "AP"]

    run = [
        irms.ScoredDoc(qid, docid, score)
        for qid, items in run_dict.items()
        for docid, score in items
    ]

    try:
        res = {}
        for measure_str in measures:
            measure = irms.parse_measure(measure_str)
            res[measure_str] = measure.calc_aggregate(qrels, run)
        return res
    except Exception as e:
        logger.error(f"Error evaluating: {e}")
        raise
