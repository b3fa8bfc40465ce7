"""
Template Store for AMP Tracker.

Read access to the active TemplateSet of a role, plus the administrative
operations that keep version history: saving a new version, activating a
version (which deactivates every other version of that role) and listing
versions for rollback.

Templates are validated on every read; a structurally inconsistent or
missing template raises ConfigurationError.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.templates import (
    ChecklistDefinition,
    TemplateSetData,
    TimeBlockDefinition,
    default_template,
    validate_template,
)
from src.core.user_context import Role
from src.lib.exceptions import ConfigurationError, NotFoundError, StoreError, ValidationError
from src.models.template_set import TemplateSet

logger = logging.getLogger(__name__)


def _to_data(row: TemplateSet) -> TemplateSetData:
    try:
        return TemplateSetData(
            template_id=row.id,
            role=Role(row.role),
            version=row.version,
            name=row.name,
            is_active=bool(row.is_active),
            time_blocks=tuple(TimeBlockDefinition.from_dict(b) for b in row.time_blocks or []),
            time_blocks_order=tuple(row.time_blocks_order or []),
            checklists=tuple(ChecklistDefinition.from_dict(c) for c in row.checklists or []),
            checklists_order=tuple(row.checklists_order or []),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigurationError(f"Malformed template set {row.id}: {exc}") from exc


class TemplateStore:
    """
    Store for role-scoped, versioned template sets.

    Args:
        session: Async SQLAlchemy session (one per request)
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _fail(self, message: str, exc: SQLAlchemyError) -> StoreError:
        await self.session.rollback()
        logger.exception(message)
        return StoreError(message)

    async def get_template(self, role: Role) -> TemplateSetData:
        """
        Load and validate the active template set for ``role``.

        Empty time-block lists are replaced by the canonical 18 slots.

        Raises:
            ConfigurationError: If no active template exists or it is inconsistent
            StoreError: If the store cannot be read
        """
        try:
            result = await self.session.execute(
                select(TemplateSet).where(
                    TemplateSet.role == role.value,
                    TemplateSet.is_active.is_(True),
                )
            )
            row = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise await self._fail("Failed to load template set", exc) from exc

        if row is None:
            raise ConfigurationError(f"No active template set for role {role.value!r}")

        template = _to_data(row).with_default_blocks()
        validate_template(template)
        return template

    async def list_template_versions(self, role: Role) -> list[TemplateSetData]:
        """All versions of a role's template, newest first."""
        try:
            result = await self.session.execute(
                select(TemplateSet)
                .where(TemplateSet.role == role.value)
                .order_by(TemplateSet.id.desc())
            )
            rows = result.scalars().all()
        except SQLAlchemyError as exc:
            raise await self._fail("Failed to load template sets", exc) from exc
        return [_to_data(row) for row in rows]

    async def save_template_set(
        self,
        template: TemplateSetData,
        created_by: int | None = None,
    ) -> TemplateSetData:
        """
        Persist a new template version.

        The template is validated before it is written. When
        ``template.is_active`` is set, the new version becomes the role's
        active version.

        Raises:
            ConfigurationError: If the template is inconsistent
            ValidationError: If the version already exists for the role
            StoreError: If the store cannot be written
        """
        validate_template(template)
        payload: dict[str, Any] = template.to_dict()
        row = TemplateSet(
            role=template.role.value,
            version=template.version,
            name=template.name,
            is_active=False,
            time_blocks=payload["time_blocks"],
            time_blocks_order=payload["time_blocks_order"],
            checklists=payload["checklists"],
            checklists_order=payload["checklists_order"],
            created_by=created_by,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(row)
        except IntegrityError as exc:
            await self.session.rollback()
            raise ValidationError(
                f"Template version {template.version} already exists for role {template.role.value}"
            ) from exc
        except SQLAlchemyError as exc:
            raise await self._fail("Failed to save template set", exc) from exc

        if template.is_active:
            return await self.activate_template_set(row.id)

        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            raise await self._fail("Failed to save template set", exc) from exc
        logger.info("Saved template set role=%s version=%s", template.role.value, template.version)
        return _to_data(row)

    async def activate_template_set(self, template_id: int) -> TemplateSetData:
        """
        Make ``template_id`` the active version of its role.

        Raises:
            NotFoundError: If the template set does not exist
            StoreError: If the store cannot be written
        """
        try:
            row = await self.session.get(TemplateSet, template_id)
            if row is None:
                raise NotFoundError(f"Template set {template_id} not found")
            await self.session.execute(
                update(TemplateSet)
                .where(TemplateSet.role == row.role, TemplateSet.id != row.id)
                .values(is_active=False)
            )
            row.is_active = True
            await self.session.commit()
            await self.session.refresh(row)
        except SQLAlchemyError as exc:
            raise await self._fail("Failed to activate template set", exc) from exc

        logger.info("Activated template set role=%s version=%s", row.role, row.version)
        return _to_data(row)

    async def seed_default_templates(self) -> list[TemplateSetData]:
        """Save the built-in template for every role that has none yet."""
        seeded: list[TemplateSetData] = []
        for role in Role:
            try:
                result = await self.session.execute(
                    select(TemplateSet.id).where(TemplateSet.role == role.value).limit(1)
                )
                exists = result.first()
            except SQLAlchemyError as exc:
                raise await self._fail("Failed to load template sets", exc) from exc
            if exists is None:
                seeded.append(await self.save_template_set(default_template(role)))
        return seeded


__all__ = ["TemplateStore"]
