"""
Filtro referencial: descarta hijos cuyo padre no existe en la base.

Evita que violaciones de FK lleguen a la base como errores opacos de chunk.
Si la verificación falla, la política configurada decide (fail-open por defecto).
"""

from __future__ import annotations

from typing import Optional, Sequence

from loguru import logger

from listing_sync.application.interfaces.sync_ports import ExistenceChecker
from listing_sync.shared.constants.sync_constants import ErrorStage, ReferentialCheckPolicy
from listing_sync.shared.exceptions.sync import ReferentialViolation

from .types import MappedRecord, RecordError, RejectedRecord


class ReferentialFilter:
    """Particiona registros hijos en (válidos, inválidos) según la existencia del padre."""

    def __init__(
        self,
        checker: ExistenceChecker,
        *,
        policy: ReferentialCheckPolicy = ReferentialCheckPolicy.FAIL_OPEN,
    ) -> None:
        self._checker = checker
        self.policy = policy

    async def filter_by_existing_parents(
        self,
        records: Sequence[MappedRecord],
        parent_key_field: str,
        parent_table: str,
        *,
        parent_key_column: Optional[str] = None,
        key_field: Optional[str] = None,
    ) -> tuple[list[MappedRecord], list[RejectedRecord]]:
        """
        Args:
            records: registros hijos ya mapeados
            parent_key_field: campo del hijo que referencia al padre
            parent_table: tabla padre
            parent_key_column: columna clave del padre (por defecto = parent_key_field)
            key_field: clave propia del hijo (para reportar errores)

        Returns:
            (validos, rechazados con etapa `referential`)
        """
        column = parent_key_column or parent_key_field
        valid: list[MappedRecord] = []
        invalid: list[RejectedRecord] = []

        candidates: list[MappedRecord] = []
        for record in records:
            if record.get(parent_key_field) in (None, ""):
                invalid.append(self._reject(record, parent_table, None, key_field))
            else:
                candidates.append(record)

        if not candidates:
            return valid, invalid

        parent_keys = {record[parent_key_field] for record in candidates}
        try:
            existing = await self._checker.exists(parent_table, column, parent_keys)
        except Exception as e:
            if self.policy == ReferentialCheckPolicy.FAIL_OPEN:
                logger.warning(
                    f"Verificacion de padres en '{parent_table}' fallo ({e}); "
                    f"fail-open: se procesan {len(candidates)} registros"
                )
                return valid + candidates, invalid
            logger.error(f"Verificacion de padres en '{parent_table}' fallo ({e}); fail-closed")
            for record in candidates:
                invalid.append(
                    RejectedRecord(
                        record=record,
                        error=RecordError(
                            key=self._key_of(record, key_field),
                            stage=ErrorStage.REFERENTIAL,
                            message=f"Verificacion de padre fallo: {e}",
                        ),
                    )
                )
            return valid, invalid

        missing = 0
        for record in candidates:
            parent_key = record[parent_key_field]
            if parent_key in existing:
                valid.append(record)
            else:
                missing += 1
                invalid.append(self._reject(record, parent_table, parent_key, key_field))

        if missing:
            logger.info(
                f"Filtro referencial '{parent_table}': {len(valid)} validos, "
                f"{missing} con padre inexistente"
            )
        return valid, invalid

    def _reject(
        self,
        record: MappedRecord,
        parent_table: str,
        parent_key,
        key_field: Optional[str],
    ) -> RejectedRecord:
        violation = ReferentialViolation(parent_table, parent_key)
        return RejectedRecord(
            record=record,
            error=RecordError(
                key=self._key_of(record, key_field),
                stage=ErrorStage.REFERENTIAL,
                message=violation.message,
            ),
        )

    @staticmethod
    def _key_of(record: MappedRecord, key_field: Optional[str]) -> Optional[str]:
        if not key_field:
            return None
        value = record.get(key_field)
        return None if value is None else str(value)
