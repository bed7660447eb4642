import logging
from datetime import date, timedelta
from typing import List, Optional

from helpers import TaskGraph
from models import HandoffStatus, Task, TaskStatus, TradeHandoff

logger = logging.getLogger(__name__)


def handoff_status(from_task: Task, to_task: Task, as_of: date) -> HandoffStatus:
    """
    Status of a work front passing from one trade to the next.
    An unfinished predecessor that is past its end date blocks the hand-off.
    """
    if from_task.is_completed and to_task.is_completed:
        return HandoffStatus.COMPLETED
    if TaskStatus.BLOCKED in (from_task.status, to_task.status):
        return HandoffStatus.BLOCKED
    if to_task.status in (TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED):
        return HandoffStatus.IN_PROGRESS
    if from_task.is_completed:
        return HandoffStatus.READY
    if from_task.end_date < as_of:
        return HandoffStatus.BLOCKED
    return HandoffStatus.PENDING


def build_handoff_sequence(graph: TaskGraph, as_of: Optional[date] = None) -> List[TradeHandoff]:
    """One hand-off per dependency edge whose two tasks belong to different trades."""
    as_of = as_of or date.today()
    handoffs = []
    for pred_id, succ_id in graph.edges():
        pred, succ = graph.tasks[pred_id], graph.tasks[succ_id]
        if not pred.assigned_trade or not succ.assigned_trade:
            continue
        if pred.assigned_trade == succ.assigned_trade:
            continue
        handoffs.append(TradeHandoff(
            from_task=pred.id,
            to_task=succ.id,
            from_trade=pred.assigned_trade,
            to_trade=succ.assigned_trade,
            handoff_date=pred.end_date + timedelta(days=1),
            status=handoff_status(pred, succ, as_of),
        ))
    handoffs.sort(key=lambda h: (h.handoff_date, h.from_task, h.to_task))
    logger.debug(f"Built {len(handoffs)} trade hand-offs")
    return handoffs


def upcoming_handoffs(handoffs: List[TradeHandoff], as_of: date, days: int = 7) -> List[TradeHandoff]:
    """Open hand-offs due between ``as_of`` and ``as_of + days`` inclusive."""
    horizon = as_of + timedelta(days=days)
    return [
        h for h in handoffs
        if as_of <= h.handoff_date <= horizon and h.status != HandoffStatus.COMPLETED
    ]
