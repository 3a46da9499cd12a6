import logging

import pandas as pd

logger = logging.getLogger(__name__)

MIN_GROUP_SIZE = 2


def validate_design(design: pd.DataFrame, item_col="item_id", group_col="group_id",
                    randomized_col="randomized") -> list:
    """Check a design against the allocation invariants; returns the violations found."""
    need = {item_col, group_col, randomized_col}
    if (m := need - set(design.columns)):
        raise ValueError(f"design missing {m}")
    violations = []
    if design.empty:
        logger.info("✅ empty design, nothing to validate")
        return violations

    logger.info("=== DESIGN VALIDATION ===")
    per_item = design.groupby(item_col)[group_col].nunique()
    multi = per_item[per_item > 1]
    if not multi.empty:
        violations.append(f"{len(multi)} items assigned to more than one group")
        logger.error(f"❌ VIOLATION: {len(multi)} items sit in more than one group:\n{multi.head().to_string()}")
    else:
        logger.info("✅ every item sits in at most one group")

    per_group = design.groupby(group_col).agg(size=(item_col, 'nunique'),
                                              n_randomized=(randomized_col, 'sum'))
    small = per_group[per_group['size'] < MIN_GROUP_SIZE]
    if not small.empty:
        violations.append(f"{len(small)} groups below {MIN_GROUP_SIZE} items")
        logger.error(f"❌ VIOLATION: {len(small)} groups below {MIN_GROUP_SIZE} items:\n{small.head().to_string()}")
    else:
        logger.info(f"✅ every group keeps at least {MIN_GROUP_SIZE} items")

    unrand = per_group[per_group['n_randomized'] < 1]
    if not unrand.empty:
        violations.append(f"{len(unrand)} groups without a randomized item")
        logger.error(f"❌ VIOLATION: {len(unrand)} groups lack a randomized item:\n{unrand.head().to_string()}")
    else:
        logger.info("✅ every group has a randomized item")
    return violations
