"""Provisioner blueprint: the resource API a batch run drives."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cloudctl.batch.plan import ItemSpec


class ProvisionerBlueprint(ABC):
    """Abstract interface for creating the items of a batch plan.

    A batch run first resolves each group key to a provider target (a zone
    id, a distribution id, …) and then creates every item of the group
    against that target. Implementations are synchronous and may raise any
    exception; the batch executor classifies and retries failures.

    Attributes:
        requires_idempotency_token: ``True`` when :meth:`create_item` is not
            naturally idempotent, so the coordinator must hand it a token that
            stays the same across retries of one item.
        group_label: Word used for groups in progress messages.
        item_noun: Word used for items in progress messages.
    """

    requires_idempotency_token: bool = False
    group_label: str = "group"
    item_noun: str = "item"

    @abstractmethod
    def resolve_group(self, group_key: str) -> str:
        """Resolve a group key to the provider target identifier.

        Args:
            group_key: Key from the plan (e.g. ``example.com``).

        Returns:
            Target identifier passed to :meth:`create_item`.
        """

    @abstractmethod
    def create_item(
        self,
        target_id: str,
        item: ItemSpec,
        idempotency_token: str | None = None,
    ) -> str:
        """Create one item and return the provider's resource identifier.

        Args:
            target_id: Identifier returned by :meth:`resolve_group`.
            item: Item to create; its ``payload`` is provider-specific.
            idempotency_token: Token to send with the create call, when the
                provisioner requires one.
        """

    def close(self) -> None:
        """Release provider connections once the run is over."""
