"""Hierarchical commission cascade - pure computation over the doctor hierarchy"""

import logging
from dataclasses import dataclass
from typing import Callable, List, Optional

from telemed_core.domain.models import SuperiorLink

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommissionPosting:
    """Commission owed to one superior in the cascade"""

    level: int
    superior_id: str
    percentage: int
    amount: int


def build_commission_chain(
    doctor_id: str,
    get_superior: Callable[[str], Optional[SuperiorLink]],
    max_depth: int = 3,
) -> List[SuperiorLink]:
    """
    Walk superior links upward from doctor_id.

    Stops when a node has no superior, when max_depth superiors have been
    collected, or when a link points back at a node already on the path
    (misconfigured cycle). A node is never returned twice.
    """
    chain: List[SuperiorLink] = []
    visited = {doctor_id}
    current = doctor_id

    while len(chain) < max_depth:
        link = get_superior(current)
        if link is None:
            break
        if link.superior_id in visited:
            logger.warning(
                "Cycle detected in doctor hierarchy",
                extra={"doctor_id": doctor_id, "user_id": current, "superior_id": link.superior_id},
            )
            break
        chain.append(link)
        visited.add(link.superior_id)
        current = link.superior_id

    return chain


def compute_commission_cascade(amount: int, chain: List[SuperiorLink]) -> List[CommissionPosting]:
    """
    Compute commissions for each superior in the chain.

    Level 1 takes floor(amount * p1 / 100); every further level takes its
    percentage of the previous level's commission, not of the original amount:

        level1 = floor(A * p1 / 100)
        level2 = floor(level1 * p2 / 100)
        level3 = floor(level2 * p3 / 100)

    Once a level rounds to zero every level above it is zero too, so the
    cascade ends there.

    Example:
        A=1000, p1=10, p2=20 -> [100, 20]
    """
    postings: List[CommissionPosting] = []
    carried = amount

    for level, link in enumerate(chain, start=1):
        commission = (carried * link.percentage) // 100
        if commission <= 0:
            break
        postings.append(
            CommissionPosting(
                level=level,
                superior_id=link.superior_id,
                percentage=link.percentage,
                amount=commission,
            )
        )
        carried = commission

    return postings


def commission_reason(level: int, function_used: str) -> str:
    return f"Level {level} commission from doctor hierarchy - {function_used}"
