"""
Lock registry service

CRUD over reusable lock definitions plus the permission rules for using
them. Callers pass an actor (see models/api/user.UserPublic): anything with
user_id, community_id and is_admin.

Who may use a lock (view it, or attach it to a resource), always within the
lock's own community:
- its creator
- anyone, when the lock is public or a template
- community administrators

Who may change the gating of a resource:
- boards: community administrators
- posts: the post author or a community administrator
"""
import dataclasses
import logging
from typing import List, Optional, Sequence

from lockgate.models.domain import (
    BoardLockGating,
    FulfillmentMode,
    Lock,
    LockFilters,
    ResourceRef,
)
from lockgate.services.errors import (
    LockConflict,
    LockNotFound,
    MalformedRequirementConfig,
    UnauthorizedLockUse,
)
from lockgate.services.validation import validate_duration_hours, validate_gating

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100

METADATA_FIELDS = ("name", "description", "icon", "color", "tags", "is_public", "is_template")
GATING_FIELDS = ("categories", "fulfillment")


def is_community_admin(actor, community_id: str) -> bool:
    return bool(actor.is_admin) and actor.community_id == community_id


class LockService:

    def __init__(self, lock_repo, policy_repo, max_verification_hours: float = 168.0, post_repo=None):
        self.lock_repo = lock_repo
        self.policy_repo = policy_repo
        self.post_repo = post_repo
        self.max_verification_hours = max_verification_hours

    # =========================================================================
    # PERMISSIONS
    # =========================================================================

    def can_use(self, actor, lock: Lock) -> bool:
        if lock.community_id != actor.community_id:
            return False
        return (
            lock.is_owned_by(actor.user_id)
            or lock.is_public
            or lock.is_template
            or is_community_admin(actor, lock.community_id)
        )

    def ensure_can_use(self, actor, lock: Lock) -> None:
        if lock.community_id != actor.community_id:
            # Locks of other communities are not visible at all
            raise LockNotFound(f"Lock {lock.id} not found")
        if not self.can_use(actor, lock):
            raise UnauthorizedLockUse()

    async def ensure_can_gate(self, actor, resource: ResourceRef) -> None:
        if actor.is_admin:
            return
        if resource.kind == "post" and self.post_repo is not None:
            if await self.post_repo.author_of(resource.id) == actor.user_id:
                return
            raise UnauthorizedLockUse("You can only apply locks to your own posts")
        raise UnauthorizedLockUse(f"Only community admins can change the locks on {resource}")

    def _ensure_can_edit(self, actor, lock: Lock) -> None:
        if not (lock.is_owned_by(actor.user_id) or is_community_admin(actor, lock.community_id)):
            raise UnauthorizedLockUse("Only the lock creator or a community admin can change this lock")

    async def _load(self, lock_id: int) -> Lock:
        lock = await self.lock_repo.get_by_id(lock_id)
        if lock is None:
            raise LockNotFound()
        return lock

    # =========================================================================
    # CRUD
    # =========================================================================

    async def create_lock(self, actor, lock: Lock) -> Lock:
        """
        Store a new lock owned by the actor.

        Raises:
            MalformedRequirementConfig: invalid categories/requirements
            LockConflict: the actor already has a lock with this name
            UnauthorizedLockUse: non-admin asking for a template
        """
        name = (lock.name or "").strip()
        if not name:
            raise MalformedRequirementConfig(["Lock name is required"])
        validate_gating(lock.categories)

        if lock.is_template and not actor.is_admin:
            raise UnauthorizedLockUse("Only community admins can create templates")

        if await self.lock_repo.name_exists(actor.community_id, actor.user_id, name):
            raise LockConflict(f"A lock named '{name}' already exists")

        lock = dataclasses.replace(
            lock,
            id=None,
            name=name,
            creator_user_id=actor.user_id,
            community_id=actor.community_id,
            usage_count=0,
            success_rate=0.0,
            avg_verification_time=0.0,
        )
        return await self.lock_repo.create(lock)

    async def get_lock(self, actor, lock_id: int) -> Lock:
        lock = await self._load(lock_id)
        self.ensure_can_use(actor, lock)
        return lock

    async def update_lock(self, actor, lock_id: int, changes: dict) -> Lock:
        """
        Apply a partial update.

        Metadata can always change. Categories and fulfillment are frozen
        once any resource references the lock, since existing verifications
        were made against them.
        """
        lock = await self._load(lock_id)
        self._ensure_can_edit(actor, lock)

        unknown = set(changes) - set(METADATA_FIELDS) - set(GATING_FIELDS)
        if unknown:
            raise MalformedRequirementConfig([f"Unknown field '{f}'" for f in sorted(unknown)])

        gating_changed = any(
            field in changes and changes[field] != getattr(lock, field)
            for field in GATING_FIELDS
        )
        if gating_changed:
            in_use = await self.policy_repo.resources_using_lock(lock_id)
            if in_use:
                raise LockConflict(
                    f"Lock is used by {len(in_use)} resource(s); its requirements cannot be changed"
                )

        if changes.get("is_template") and not lock.is_template and not is_community_admin(actor, lock.community_id):
            raise UnauthorizedLockUse("Only community admins can create templates")

        if "name" in changes:
            name = (changes["name"] or "").strip()
            if not name:
                raise MalformedRequirementConfig(["Lock name is required"])
            if await self.lock_repo.name_exists(lock.community_id, lock.creator_user_id, name, exclude_id=lock_id):
                raise LockConflict(f"A lock named '{name}' already exists")
            changes = {**changes, "name": name}

        updated = dataclasses.replace(lock, **changes)
        if gating_changed:
            validate_gating(updated.categories)

        return await self.lock_repo.update(updated)

    async def delete_lock(self, actor, lock_id: int) -> None:
        lock = await self._load(lock_id)
        self._ensure_can_edit(actor, lock)

        in_use = await self.policy_repo.resources_using_lock(lock_id)
        if in_use:
            raise LockConflict(f"Lock is used by {len(in_use)} resource(s) and cannot be deleted")

        await self.lock_repo.delete(lock_id)
        logger.info(f"User {actor.user_id} deleted lock {lock_id}")

    async def list_locks(
        self,
        actor,
        creator_user_id: Optional[str] = None,
        is_public: Optional[bool] = None,
        is_template: Optional[bool] = None,
        tag: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> dict:
        """Locks the actor may use, paginated"""
        page = max(page, 1)
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        filters = LockFilters(
            community_id=actor.community_id,
            viewer_user_id=actor.user_id,
            viewer_is_admin=bool(actor.is_admin),
            creator_user_id=creator_user_id,
            is_public=is_public,
            is_template=is_template,
            tag=tag,
            search=search,
            limit=limit,
            offset=(page - 1) * limit,
        )
        locks, total = await self.lock_repo.list(filters)
        return {
            "locks": locks,
            "total": total,
            "page": page,
            "limit": limit,
            "has_more": page * limit < total,
        }

    # =========================================================================
    # GATING AND STATISTICS
    # =========================================================================

    async def apply_gating(
        self,
        actor,
        resource: ResourceRef,
        lock_ids: Sequence[int],
        fulfillment: FulfillmentMode,
        verification_duration_hours: float,
    ) -> BoardLockGating:
        """
        Attach locks to a post or board.

        The actor must be allowed to gate the resource, and every lock must
        exist and be usable by the actor. An empty lock list opens the
        resource.
        """
        await self.ensure_can_gate(actor, resource)
        validate_duration_hours(verification_duration_hours, self.max_verification_hours)

        unique_ids: List[int] = list(dict.fromkeys(lock_ids))
        found = await self.lock_repo.get_many(unique_ids)
        for lock_id in unique_ids:
            lock = found.get(lock_id)
            if lock is None:
                raise LockNotFound(f"Lock {lock_id} not found")
            self.ensure_can_use(actor, lock)

        gating = BoardLockGating(
            lock_ids=unique_ids,
            fulfillment=fulfillment,
            verification_duration_hours=verification_duration_hours,
        )
        await self.policy_repo.set(resource, gating)
        return gating

    async def get_gating(self, resource: ResourceRef) -> Optional[BoardLockGating]:
        return await self.policy_repo.get(resource)

    async def record_attempt(self, lock_id: int, success: bool, elapsed_seconds: float) -> None:
        await self.lock_repo.record_attempt(lock_id, success, elapsed_seconds)
