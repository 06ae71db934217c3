"""
Identifier Generator

Produces sequential, human-readable identifiers per (tenant, model, reset
period). The counter lives in the tenant's IdentifierCounter table and is
advanced with a single upsert:

    INSERT ... VALUES (model, reset_key, 1)
    ON CONFLICT (model_name, reset_key) DO UPDATE SET counter = counter + 1
    RETURNING counter

so two concurrent callers can never observe the same value. The statement
runs on the caller's session; the increment commits or rolls back with the
row that receives the identifier.

NOTE: Only PostgreSQL and SQLite have the upsert dialect support used here.
"""
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional
import logging
import uuid

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from pathosaathi.core.exceptions import InternalError
from pathosaathi.services.identifier_config import IdentifierConfigStore
from pathosaathi.services.identifier_formats import (
    ALL_TIME,
    IdentifierConfig,
    format_identifier,
    get_reset_key,
    parse_counter,
)
from pathosaathi.services.model_router import COUNTER_ENTITY, ModelRouter

logger = logging.getLogger(__name__)

UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class IdentifierGenerator:
    def __init__(
        self,
        models: ModelRouter,
        configs: IdentifierConfigStore,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.models = models
        self.configs = configs
        self.clock = clock

    def _counter_table(self, tenant_prefix: str):
        return self.models.get(tenant_prefix, COUNTER_ENTITY).__table__

    @staticmethod
    def _upsert(db: Session):
        dialect = db.get_bind().dialect.name
        insert = UPSERT_DIALECTS.get(dialect)
        if insert is None:
            raise InternalError(f"Identifier counters are not supported on {dialect}")
        return insert

    def increment(self, db: Session, tenant_prefix: str, model_name: str, reset_key: str, now: datetime) -> int:
        """Atomically advance and return the counter for one bucket."""
        table = self._counter_table(tenant_prefix)
        stmt = self._upsert(db)(table).values(
            id=str(uuid.uuid4()),
            model_name=model_name,
            reset_key=reset_key,
            counter=1,
            last_used=now,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.model_name, table.c.reset_key],
            set_={
                "counter": table.c.counter + 1,
                "last_used": now,
                "updated_at": now,
            },
        ).returning(table.c.counter)
        return db.execute(stmt).scalar_one()

    def next_identifier(self, db: Session, tenant_prefix: str, model_name: str, now: Optional[datetime] = None) -> str:
        """
        Generate the next identifier for `model_name` in `tenant_prefix`.

        One clock reading drives both the reset bucket and the rendered date,
        so an identifier's date always matches the period it was counted in.
        """
        now = now or self.clock()
        config = self.configs.get_config(db, tenant_prefix, model_name)
        reset_key = get_reset_key(config.reset_frequency, now)

        counter = self.increment(db, tenant_prefix, model_name, reset_key, now)
        identifier = format_identifier(config, counter, now)

        self.configs.update_usage_stats(db, tenant_prefix, now=now)
        logger.debug(f"Generated identifier {identifier}", extra={"tenant_prefix": tenant_prefix})
        return identifier

    def parse(self, db: Session, tenant_prefix: str, model_name: str, identifier: str) -> Optional[int]:
        config = self.configs.get_config(db, tenant_prefix, model_name)
        return parse_counter(config, identifier)

    def _current_reset_key(self, db: Session, tenant_prefix: str, model_name: str, now: Optional[datetime]) -> str:
        config: IdentifierConfig = self.configs.get_config(db, tenant_prefix, model_name)
        return get_reset_key(config.reset_frequency, now or self.clock())

    def get_current_counter(self, db: Session, tenant_prefix: str, model_name: str, now: Optional[datetime] = None) -> int:
        table = self._counter_table(tenant_prefix)
        reset_key = self._current_reset_key(db, tenant_prefix, model_name, now)
        value = db.execute(
            select(table.c.counter).where(
                table.c.model_name == model_name,
                table.c.reset_key == reset_key,
            )
        ).scalar_one_or_none()
        return value or 0

    def reset_counter(self, db: Session, tenant_prefix: str, model_name: str, now: Optional[datetime] = None) -> None:
        """
        Set the current period's counter back to zero.

        Identifiers already issued in this period are not checked, so the
        next ones repeat them. Only reset a period whose identifiers were
        discarded.
        """
        now = now or self.clock()
        table = self._counter_table(tenant_prefix)
        reset_key = self._current_reset_key(db, tenant_prefix, model_name, now)
        stmt = self._upsert(db)(table).values(
            id=str(uuid.uuid4()),
            model_name=model_name,
            reset_key=reset_key,
            counter=0,
            last_used=now,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.model_name, table.c.reset_key],
            set_={"counter": 0, "last_used": now, "updated_at": now},
        )
        db.execute(stmt)
        logger.info(f"Counter reset for {model_name}", extra={"tenant_prefix": tenant_prefix})

    def get_usage_stats(self, db: Session, tenant_prefix: str) -> List[Dict[str, Any]]:
        table = self._counter_table(tenant_prefix)
        rows = db.execute(
            select(
                table.c.model_name,
                func.count().label("total_counters"),
                func.max(table.c.counter).label("max_counter"),
                func.min(table.c.counter).label("min_counter"),
                func.avg(table.c.counter).label("avg_counter"),
                func.max(table.c.last_used).label("last_used"),
            )
            .group_by(table.c.model_name)
            .order_by(table.c.model_name)
        ).all()
        return [
            {
                "model_name": row.model_name,
                "total_counters": row.total_counters,
                "max_counter": row.max_counter,
                "min_counter": row.min_counter,
                "avg_counter": float(row.avg_counter or 0),
                "last_used": row.last_used,
            }
            for row in rows
        ]

    def cleanup_old_counters(self, db: Session, tenant_prefix: str, days_old: int = 365, now: Optional[datetime] = None) -> int:
        """Delete counters idle for `days_old` days. All-time counters are kept."""
        table = self._counter_table(tenant_prefix)
        cutoff = (now or self.clock()) - timedelta(days=days_old)
        result = db.execute(
            table.delete().where(
                table.c.last_used < cutoff,
                table.c.reset_key != ALL_TIME,
            )
        )
        logger.info(f"Removed {result.rowcount} stale counters", extra={"tenant_prefix": tenant_prefix})
        return result.rowcount
