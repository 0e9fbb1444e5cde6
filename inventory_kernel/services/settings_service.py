"""
SettingsService -- named inventory settings with bounds and a change log.

Responsibility:
    Reads and updates the global settings (percentages, absolute floors,
    safety-stock days) that drive computed thresholds, and records every
    administrative change in the append-only settings log.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - A value outside [min_value, max_value] is rejected before any write;
      the prior value stays and no log row is written.
    - Every accepted change bumps version with a compare-and-swap and writes
      exactly one SettingChangeLog row in the same flush.
    - Settings are soft-deactivated, never deleted.
    - Seeding never overwrites an existing setting.

Failure modes:
    - SettingNotFoundError, SettingOutOfBoundsError,
      InvalidSettingValueError, InvalidSettingDefinitionError.
    - ConcurrencyConflictError when the row changed underneath the caller
      (stale expected_version or a lost compare-and-swap).
"""

from collections.abc import Iterable, Mapping
from decimal import Decimal, InvalidOperation
from uuid import UUID

from sqlalchemy import select, update

from inventory_kernel.domain.dtos import SettingChange, SettingDefinition, SettingInfo
from inventory_kernel.exceptions import (
    ConcurrencyConflictError,
    InvalidSettingDefinitionError,
    InvalidSettingValueError,
    SettingNotFoundError,
    SettingOutOfBoundsError,
)
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.models.settings import (
    InventorySetting,
    SettingChangeLog,
    SettingChangeType,
    SettingType,
)
from inventory_kernel.services.base import BaseService

logger = get_logger("services.settings")


def parse_setting_value(name: str, value: object) -> Decimal:
    """Coerce an incoming value to Decimal; floats go through str()."""
    if isinstance(value, bool):
        raise InvalidSettingValueError(name, value, "booleans are not numbers")
    if isinstance(value, Decimal):
        parsed = value
    elif isinstance(value, (int, float, str)):
        try:
            parsed = Decimal(str(value).strip())
        except InvalidOperation:
            raise InvalidSettingValueError(name, value, "not a number") from None
    else:
        raise InvalidSettingValueError(name, value, "unsupported type")
    if not parsed.is_finite():
        raise InvalidSettingValueError(name, value, "must be finite")
    return parsed


class SettingsService(BaseService[InventorySetting]):
    """
    Service for inventory settings.

    All public methods return SettingInfo / SettingChange DTOs, not ORM
    entities.  The caller owns the transaction.
    """

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_setting(self, name: str) -> SettingInfo:
        return SettingInfo.from_model(self._load(name))

    def list_settings(self, active_only: bool = True) -> list[SettingInfo]:
        stmt = select(InventorySetting).order_by(
            InventorySetting.setting_type, InventorySetting.name
        )
        if active_only:
            stmt = stmt.where(InventorySetting.is_active.is_(True))
        rows = self.session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalars()
        return [SettingInfo.from_model(row) for row in rows]

    def get_active_values(self) -> dict[str, Decimal]:
        """Active setting name -> value.  Inactive settings are omitted."""
        rows = self.session.execute(
            select(InventorySetting.name, InventorySetting.value).where(
                InventorySetting.is_active.is_(True)
            )
        )
        return {row.name: Decimal(row.value) for row in rows}

    def get_change_log(
        self,
        name: str | None = None,
        limit: int = 50,
    ) -> list[SettingChange]:
        """Most recent changes first."""
        stmt = select(SettingChangeLog).order_by(
            SettingChangeLog.changed_at.desc(),
            SettingChangeLog.setting_version.desc(),
        )
        if name is not None:
            stmt = stmt.where(SettingChangeLog.setting_name == name)
        rows = self.session.execute(stmt.limit(limit)).scalars()
        return [SettingChange.from_model(row) for row in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def update_setting(
        self,
        name: str,
        new_value: object,
        actor_id: UUID,
        reason: str | None = None,
        expected_version: int | None = None,
    ) -> SettingInfo:
        """
        Change a setting's value.

        Setting the current value again is a no-op and writes no log row.

        Raises:
            SettingNotFoundError, InvalidSettingValueError,
            SettingOutOfBoundsError, ConcurrencyConflictError.
        """
        with LogContext.bind(actor_id=actor_id, operation="update_setting"):
            setting = self._load(name)
            value = parse_setting_value(name, new_value)

            if expected_version is not None and expected_version != setting.version:
                logger.info(
                    "setting_version_stale",
                    extra={
                        "setting_name": name,
                        "expected_version": expected_version,
                        "actual_version": setting.version,
                    },
                )
                raise ConcurrencyConflictError("InventorySetting", name, 1)

            min_value = Decimal(setting.min_value)
            max_value = Decimal(setting.max_value)
            if value < min_value or value > max_value:
                logger.warning(
                    "setting_update_rejected_bounds",
                    extra={
                        "setting_name": name,
                        "value": value,
                        "min_value": min_value,
                        "max_value": max_value,
                    },
                )
                raise SettingOutOfBoundsError(
                    name, str(value), str(min_value), str(max_value)
                )

            old_value = Decimal(setting.value)
            if value == old_value:
                return SettingInfo.from_model(setting)

            new_version = self._swap(
                setting,
                actor_id,
                value=value,
            )
            self._log_change(
                name,
                SettingChangeType.VALUE,
                old_value,
                value,
                actor_id,
                reason,
                new_version,
            )
            self.session.flush()

            logger.info(
                "setting_updated",
                extra={
                    "setting_name": name,
                    "old_value": old_value,
                    "new_value": value,
                    "version": new_version,
                },
            )
            return self.get_setting(name)

    def update_settings(
        self,
        updates: Mapping[str, object],
        actor_id: UUID,
        reason: str | None = None,
    ) -> list[SettingInfo]:
        """
        Apply several value changes in the caller's transaction.

        Every value is validated first, so one bad value rejects the batch
        before anything is written.
        """
        for name, value in updates.items():
            setting = self._load(name)
            parsed = parse_setting_value(name, value)
            if parsed < Decimal(setting.min_value) or parsed > Decimal(setting.max_value):
                raise SettingOutOfBoundsError(
                    name, str(parsed), str(setting.min_value), str(setting.max_value)
                )
        return [
            self.update_setting(name, value, actor_id, reason)
            for name, value in updates.items()
        ]

    def set_active(
        self,
        name: str,
        active: bool,
        actor_id: UUID,
        reason: str | None = None,
    ) -> SettingInfo:
        """Soft-deactivate or reactivate a setting.  Logged."""
        setting = self._load(name)
        if setting.is_active == active:
            return SettingInfo.from_model(setting)

        new_version = self._swap(setting, actor_id, is_active=active)
        change_type = SettingChangeType.ACTIVATE if active else SettingChangeType.DEACTIVATE
        value = Decimal(setting.value)
        self._log_change(name, change_type, value, value, actor_id, reason, new_version)
        self.session.flush()

        logger.info(
            "setting_activation_changed",
            extra={"setting_name": name, "is_active": active, "version": new_version},
        )
        return self.get_setting(name)

    def create_setting(
        self,
        definition: SettingDefinition,
        actor_id: UUID,
    ) -> SettingInfo:
        """
        Insert a new setting.

        Raises:
            InvalidSettingDefinitionError: bounds inverted, default outside
                bounds, unknown type, or the name already exists.
        """
        self._validate_definition(definition)
        existing = self.session.execute(
            select(InventorySetting.id).where(InventorySetting.name == definition.name)
        ).first()
        if existing is not None:
            raise InvalidSettingDefinitionError(definition.name, "setting already exists")

        setting = InventorySetting(
            name=definition.name,
            value=Decimal(definition.value),
            setting_type=definition.setting_type,
            min_value=Decimal(definition.min_value),
            max_value=Decimal(definition.max_value),
            description=definition.description,
            is_active=True,
            version=1,
            created_by_id=actor_id,
        )
        self.session.add(setting)
        self.session.flush()

        logger.info(
            "setting_created",
            extra={"setting_name": definition.name, "value": definition.value},
        )
        return SettingInfo.from_model(setting)

    def seed_defaults(
        self,
        definitions: Iterable[SettingDefinition],
        actor_id: UUID,
    ) -> list[str]:
        """
        Create every definition whose name does not exist yet.

        Returns:
            Names of the settings that were created.
        """
        existing = set(
            self.session.execute(select(InventorySetting.name)).scalars()
        )
        created: list[str] = []
        for definition in definitions:
            if definition.name in existing:
                continue
            self.create_setting(definition, actor_id)
            existing.add(definition.name)
            created.append(definition.name)

        if created:
            logger.info("settings_seeded", extra={"created_settings": created})
        return created

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load(self, name: str) -> InventorySetting:
        setting = self.session.execute(
            select(InventorySetting)
            .where(InventorySetting.name == name)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if setting is None:
            raise SettingNotFoundError(name)
        return setting

    def _swap(self, setting: InventorySetting, actor_id: UUID, **values) -> int:
        """Compare-and-swap on version.  Returns the new version."""
        expected = setting.version
        result = self.session.execute(
            update(InventorySetting)
            .where(
                InventorySetting.id == setting.id,
                InventorySetting.version == expected,
            )
            .values(
                version=expected + 1,
                updated_by_id=actor_id,
                updated_at=self._clock.now(),
                **values,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.info(
                "setting_cas_conflict",
                extra={"setting_name": setting.name, "expected_version": expected},
            )
            raise ConcurrencyConflictError("InventorySetting", setting.name, 1)
        return expected + 1

    def _log_change(
        self,
        name: str,
        change_type: SettingChangeType,
        old_value: Decimal | None,
        new_value: Decimal | None,
        actor_id: UUID,
        reason: str | None,
        setting_version: int,
    ) -> None:
        self.session.add(
            SettingChangeLog(
                setting_name=name,
                change_type=change_type.value,
                old_value=old_value,
                new_value=new_value,
                actor_id=actor_id,
                reason=reason,
                changed_at=self._clock.now(),
                setting_version=setting_version,
            )
        )

    @staticmethod
    def _validate_definition(definition: SettingDefinition) -> None:
        try:
            SettingType(definition.setting_type)
        except ValueError:
            raise InvalidSettingDefinitionError(
                definition.name, f"unknown setting type {definition.setting_type!r}"
            ) from None
        value = Decimal(definition.value)
        low = Decimal(definition.min_value)
        high = Decimal(definition.max_value)
        if low > high:
            raise InvalidSettingDefinitionError(
                definition.name, f"min_value {low} exceeds max_value {high}"
            )
        if value < low or value > high:
            raise InvalidSettingDefinitionError(
                definition.name, f"default {value} outside [{low}, {high}]"
            )
