"""Block and report handling for the Rendezvous engine.

Blocking never removes a match or its history; it only gates sending from
the client side. Reports from enough distinct profiles deactivate the
reported profile.
"""

import uuid
from typing import List, Optional

import sentry_sdk

from rendezvous.config import settings
from rendezvous.models.moderation import Block, BlockStatus, Report, ReportReason
from rendezvous.services.profile_service import deactivate_profile
from rendezvous.utils.database import run_query
from rendezvous.utils.errors import ConflictError, ValidationError
from rendezvous.utils.logging import get_logger

logger = get_logger(__name__)


def _pair_filter(profile_a: str, profile_b: str) -> dict:
    return {
        "$or": [
            {"blocker_id": profile_a, "blocked_id": profile_b},
            {"blocker_id": profile_b, "blocked_id": profile_a},
        ]
    }


async def block_user(blocker_id: str, blocked_id: str) -> Block:
    """Block a profile. Blocking twice returns the existing block.

    Raises:
        ValidationError: If a profile tries to block itself
    """
    if blocker_id == blocked_id:
        raise ValidationError("Profiles cannot block themselves", details={"profile_id": blocker_id})

    block = Block(id=str(uuid.uuid4()), blocker_id=blocker_id, blocked_id=blocked_id)
    try:
        result = await run_query(table="blocks", query_type="insert", data=block.model_dump())
    except ConflictError:
        existing = await run_query(
            table="blocks",
            query_type="select",
            filters={"blocker_id": blocker_id, "blocked_id": blocked_id},
        )
        logger.debug("Block already exists", blocker_id=blocker_id, blocked_id=blocked_id)
        return Block.model_validate(existing.data[0])

    logger.info("Profile blocked", blocker_id=blocker_id, blocked_id=blocked_id)
    return Block.model_validate(result.data[0])


async def unblock_user(blocker_id: str, blocked_id: str) -> None:
    """Remove a block. Missing blocks are ignored."""
    await run_query(
        table="blocks",
        query_type="delete",
        filters={"blocker_id": blocker_id, "blocked_id": blocked_id},
    )
    logger.info("Profile unblocked", blocker_id=blocker_id, blocked_id=blocked_id)


async def get_block_status(viewer_id: str, other_id: str) -> BlockStatus:
    """Get the block state between a viewer and another profile, both directions."""
    result = await run_query(table="blocks", query_type="select", filters=_pair_filter(viewer_id, other_id))

    return BlockStatus(
        blocked_by_me=any(row["blocker_id"] == viewer_id for row in result.data),
        blocked_by_them=any(row["blocker_id"] == other_id for row in result.data),
    )


async def is_blocked(profile_a: str, profile_b: str) -> bool:
    """Check whether either profile blocked the other."""
    result = await run_query(table="blocks", query_type="count", filters=_pair_filter(profile_a, profile_b))
    return result.count > 0


async def get_blocked_users(blocker_id: str) -> List[str]:
    """Get the IDs of every profile blocked by a profile."""
    result = await run_query(table="blocks", query_type="select", filters={"blocker_id": blocker_id})
    return [row["blocked_id"] for row in result.data]


async def report_user(
    reporter_id: str,
    reported_id: str,
    reason: ReportReason,
    details: Optional[str] = None,
) -> Report:
    """Report a profile.

    Once `REPORT_BAN_THRESHOLD` distinct profiles have reported the same
    profile it is deactivated.

    Raises:
        ValidationError: If a profile reports itself
    """
    if reporter_id == reported_id:
        raise ValidationError("Profiles cannot report themselves", details={"profile_id": reporter_id})

    with sentry_sdk.start_span(op="moderation.report", name=reported_id) as span:
        report = Report(
            id=str(uuid.uuid4()),
            reporter_id=reporter_id,
            reported_id=reported_id,
            reason=reason,
            details=details,
        )
        data = report.model_dump()
        data["reason"] = report.reason.value
        await run_query(table="reports", query_type="insert", data=data)

        reports = await run_query(table="reports", query_type="select", filters={"reported_id": reported_id})
        distinct_reporters = {row["reporter_id"] for row in reports.data}
        span.set_data("distinct_reporters", len(distinct_reporters))

        logger.info(
            "Profile reported",
            reporter_id=reporter_id,
            reported_id=reported_id,
            reason=report.reason.value,
            distinct_reporters=len(distinct_reporters),
        )

        if len(distinct_reporters) >= settings.REPORT_BAN_THRESHOLD:
            await deactivate_profile(reported_id)
            logger.warning("Profile deactivated after reports", profile_id=reported_id)

        return report
