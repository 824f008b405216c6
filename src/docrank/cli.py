"""
CLI main program module.

Builds the normalizer, vector model and document index, answers an optional
ad-hoc query and evaluates the ranking on the configured dataset.
"""
import sys
import time
import logging
import argparse
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import ir_measures as irms
import pandas as pd
from tqdm import tqdm

from .annotate import build_engine_pool
from .config import Config
from .data import (
    DataSet,
    DocumentSource,
    FolderDocumentSource,
    IrDatasetDocumentSource,
    dataset_from_queries,
    load_dataset_file,
    load_ir_dataset,
    load_qrels,
    load_queries,
)
from .errors import VocabularyMismatch
from .evaluate import evaluate, evaluate_runs
from .models import build_model
from .normalize import TextNormalizer, common_preprocessor
from .search import RankedEntry, Retriever


logger = logging.getLogger(__name__)


def configure_logging(log_dir: Optional[Path] = None, verbose: bool = False, quiet: bool = False) -> None:
    """Configure the logging system.

    Args:
        log_dir: Directory to save log files, outputs to console only if None
        verbose: Whether to enable detailed logging (DEBUG level)
        quiet: Whether to only show warnings and above (WARNING level)
    """
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if log_dir:
        log_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = log_dir / f"docrank_{timestamp}.log"
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )


def log_experiment_info(cfg: Config) -> None:
    logger.info("=" * 80)
    logger.info("Document Ranking Experiment Start")
    logger.info("=" * 80)
    logger.info(f"Model: {cfg.model_type}")
    if cfg.model_type == "transformer":
        logger.info(f"Embedding Model: {cfg.embed_model} ({cfg.device})")
    logger.info(f"Documents: {cfg.ir_dataset_id or cfg.documents_dir}")
    logger.info(f"Stemming: {cfg.use_stemming}")
    logger.info(f"Allowed POS tags: {', '.join(sorted(cfg.allowed_pos_tags))}")
    logger.info(f"Missing label policy: {cfg.missing_label_policy}")
    logger.info("=" * 80)


def load_collection(cfg: Config) -> Tuple[DocumentSource, Optional[DataSet], List[str], List[irms.Qrel]]:
    """Load the document source and evaluation data selected by `cfg`.

    Returns:
        Tuple: (source, dataset or None, query IDs, relevance judgments)
    """
    if cfg.ir_dataset_id:
        ds = load_ir_dataset(cfg)
        source = IrDatasetDocumentSource(ds, cfg)
        judgments = load_qrels(ds)
        dataset, query_ids = dataset_from_queries(load_queries(ds), judgments)
        qrels = [irms.Qrel(q.query_id, q.doc_id, q.relevance) for q in judgments]
        return source, dataset, query_ids, qrels

    source = FolderDocumentSource(cfg.documents_dir)
    dataset_path = Path(cfg.dataset_file)
    if not dataset_path.exists():
        logger.warning(f"Dataset file not found, evaluation will be skipped: {dataset_path}")
        return source, None, [], []

    dataset = load_dataset_file(dataset_path)
    query_ids = [f"q{i}" for i in range(len(dataset))]
    qrels = [
        irms.Qrel(qid, label, 1)
        for qid, item in zip(query_ids, dataset)
        for label in dict.fromkeys(item.relevant_labels)
    ]
    return source, dataset, query_ids, qrels


def _rank_or_empty(retriever: Retriever, text: str) -> List[RankedEntry]:
    try:
        return retriever.rank(text)
    except VocabularyMismatch as e:
        logger.warning(f"Query cannot be vectorized, treating its ranking as empty: {e}")
        return []


def show_query(retriever: Retriever, query: str, top_k: int) -> None:
    entries = retriever.rank(query)[:top_k]
    rows = []
    for position, entry in enumerate(entries, start=1):
        content = retriever.get_document_content(entry.label) or ""
        rows.append({
            "rank": position,
            "label": entry.label,
            "score": round(entry.score, 4),
            "content": " ".join(content.split())[:80],
        })
    logger.info(f"\nTop {len(rows)} documents for: {query}\n" + pd.DataFrame(rows).to_string(index=False))


def evaluate_dataset(
    cfg: Config,
    retriever: Retriever,
    dataset: DataSet,
    query_ids: Sequence[str],
    qrels: List[irms.Qrel],
) -> Dict[str, float]:
    """Rank every dataset query once and compute MRR plus the configured ir_measures metrics."""
    rankings: Dict[str, List[RankedEntry]] = {}
    for item in tqdm(dataset, desc="Ranking queries", unit="query"):
        if item.input not in rankings:
            rankings[item.input] = _rank_or_empty(retriever, item.input)

    results = {
        "MRR": evaluate(
            dataset,
            lambda text: [entry.label for entry in rankings[text]],
            policy=cfg.missing_label_policy,
        )
    }

    run_dict = {
        qid: [(entry.label, entry.score) for entry in rankings[item.input]]
        for qid, item in zip(query_ids, dataset)
    }
    results.update(evaluate_runs(run_dict, qrels, measures=cfg.eval_measures))
    return results


def run_all(cfg: Config, query: Optional[str] = None) -> Dict[str, float]:
    """Execute the complete ranking pipeline.

    Includes data loading, model fitting, index building, an optional ad-hoc
    query and evaluation.

    Args:
        cfg: Experiment configuration
        query: Optional query whose top documents are printed

    Returns:
        Dict[str, float]: Evaluation results (empty when there is no dataset)
    """
    start_time = time.time()

    try:
        log_experiment_info(cfg)

        logger.info("Loading documents and dataset...")
        source, dataset, query_ids, qrels = load_collection(cfg)

        logger.info("Preparing text normalizer...")
        pool = build_engine_pool(use_stemming=cfg.use_stemming, size=cfg.engine_pool_size)
        normalizer = TextNormalizer(cfg, pool, pre_processor=common_preprocessor)

        logger.info("Fitting vector model...")
        model = build_model(cfg, normalizer)
        model.fit(document.content for document in tqdm(source, desc="Reading documents", unit="doc"))

        logger.info("Building document index...")
        retriever = Retriever(source, model)
        retriever.rebuild(show_progress=True)

        if query:
            show_query(retriever, query, cfg.top_k)

        results: Dict[str, float] = {}
        if dataset is not None and len(dataset):
            logger.info(f"Evaluating {len(dataset)} queries...")
            results = evaluate_dataset(cfg, retriever, dataset, query_ids, qrels)
            results_df = pd.DataFrame({cfg.model_type: results})
            logger.info("\nResults:\n" + results_df.to_string())

        elapsed_time = time.time() - start_time
        logger.info(f"\nExperiment completed, total time: {elapsed_time:.2f} seconds")
        logger.info("=" * 80)
        return results

    except KeyboardInterrupt:
        logger.warning("\nUser interrupted the experiment")
        raise
    except Exception as e:
        logger.exception(f"An error occurred during the experiment: {e}")
        raise


def main() -> None:
    """CLI main entry point."""
    parser = argparse.ArgumentParser(description="Rank documents by similarity and evaluate with MRR")
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable detailed log output (DEBUG level)"
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Only show warning and error logs (WARNING level)"
    )
    parser.add_argument(
        "--query",
        help="Rank the document collection for this text and print the top documents"
    )
    args = parser.parse_args()

    if args.verbose and args.quiet:
        print("Error: --verbose and --quiet cannot be used simultaneously", file=sys.stderr)
        sys.exit(1)

    try:
        log_dir = Path("./logs") if args.verbose else None
        configure_logging(log_dir, verbose=args.verbose, quiet=args.quiet)

        logger.info("Loading experiment configuration...")
        cfg = Config.from_env()

        run_all(cfg, query=args.query)

    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("\nProgram interrupted by user")
        sys.exit(130)
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
