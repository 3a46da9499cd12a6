import logging
import textwrap

import pandas as pd

logger = logging.getLogger(__name__)


def summarize(design: pd.DataFrame, candidates) -> dict:
    item, group = candidates.item_col, candidates.group_col
    n_items = len(candidates.items)
    n_kept = int(design[item].nunique()) if not design.empty else 0
    sizes = design.groupby(group).size() if not design.empty else pd.Series(dtype=int)
    dist = sizes.value_counts().sort_index().to_dict()
    return {'n_items': n_items,
            'n_retained': n_kept,
            'retention_rate': float(n_kept / n_items) if n_items else 0.0,
            'n_groups': int(len(sizes)),
            'n_candidate_groups': int(candidates.n_groups),
            'n_dropped_groups': int(len(candidates.dropped_groups)),
            'dist': {int(k): int(v) for k, v in dist.items()}}


def print_summary(design, candidates, label, t_sec, objective=float('nan')):
    stats = summarize(design, candidates)
    dist = "   ".join(f"{k}→{v:,}" for k, v in stats['dist'].items()) or "-"
    summary_text = textwrap.dedent(f"""
        ── {label} summary ───────────────────────────────────────
        items (eligible)  : {stats['n_items']:,}
        items retained    : {stats['n_retained']:,}  ({stats['retention_rate']*100:.2f} %)
        groups selected   : {stats['n_groups']:,} of {stats['n_candidate_groups']:,} eligible  ({stats['n_dropped_groups']:,} ineligible dropped)
        group sizes       : {dist}
        objective         : {objective:.6f}
        wall time         : {t_sec:.1f}s
        ──────────────────────────────────────────────────────────
    """).strip()
    logger.info(summary_text)
    return stats
