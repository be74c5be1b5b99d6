"""
ApproverResolver -- effective approver set of a workflow level.

Responsibility:
    Turns a level's explicit ``approver_ids`` and ``approver_group_ids`` into
    the de-duplicated set of users who must act at that level.  Group
    membership (and the active-user / active-group filtering that goes with
    it) is owned by the GroupMembershipResolver port.

Architecture position:
    Kernel > Services.  Pure apart from the port call; no session, no cache.
    The result feeds point-in-time approval row creation, so it is always
    resolved fresh.

Failure modes:
    - An empty set is a valid result; the caller decides what it means.
    - Errors raised by the port propagate unchanged.
"""

from registration_kernel.domain.ports import GroupMembershipResolver
from registration_kernel.domain.workflow import WorkflowLevel
from registration_kernel.logging_config import get_logger

logger = get_logger("services.approver_resolver")


class ApproverResolver:
    """Resolves a level to its effective approver ids."""

    def __init__(self, groups: GroupMembershipResolver):
        self._groups = groups

    def resolve(self, level: WorkflowLevel) -> frozenset[str]:
        approvers: set[str] = {a for a in level.approver_ids if a}

        if level.approver_group_ids:
            members = self._groups.get_user_ids_from_groups(
                list(level.approver_group_ids)
            )
            approvers.update(m for m in members if m)

        logger.debug(
            "approvers_resolved",
            extra={
                "approval_level": level.level_order,
                "explicit_count": len(level.approver_ids),
                "group_count": len(level.approver_group_ids),
                "resolved_count": len(approvers),
            },
        )
        return frozenset(approvers)
