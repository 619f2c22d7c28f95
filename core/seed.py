"""
Idempotent bootstrap of an empty deployment.

Fills empty collections from fixture files and makes sure the default
administrative account exists. A marker claimed through the active
backend's seed guard keeps concurrent cold starts from seeding twice.

Usage:
    engine = SeedEngine(data_access, settings)
    report = await engine.run()
"""

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Mapping, Optional, Sequence

from core.logging import get_logger
from core.security import hash_password_async, is_password_hash
from core.storage.base import utcnow
from core.storage.factory import DataAccess


if TYPE_CHECKING:
    from core.config import Settings


logger = get_logger(__name__)


SEED_KEY = "initial-seed"
APPROVED = "Approved"
ADMIN_ROLE = "superadmin"

DEFAULT_CATEGORIES: tuple[dict[str, Any], ...] = (
    {"id": "tech", "label": "Tech", "name": "Tech", "image": "https://placehold.co/400"},
    {"id": "fashion", "label": "Fashion", "name": "Fashion", "image": "https://placehold.co/400"},
)


@dataclass
class FixtureSet:
    """Plain field maps to insert into empty collections."""
    categories: Sequence[Mapping[str, Any]] = ()
    influencers: Sequence[Mapping[str, Any]] = ()


@dataclass
class SeedReport:
    skipped: bool = False
    categories: int = 0
    influencers: int = 0
    admin_created: bool = False


def _read_json(path: Path) -> list[dict[str, Any]]:
    if not path.exists():
        return []

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.error("Fixture file unreadable", path=str(path), error=str(e))
        return []

    if not isinstance(data, list):
        logger.error("Fixture file is not a list", path=str(path))
        return []
    return [item for item in data if isinstance(item, dict)]


def load_fixtures(fixtures_dir: Path) -> FixtureSet:
    """Read ``categories.json`` and ``influencers.json`` from a directory."""
    fixtures_dir = Path(fixtures_dir)
    return FixtureSet(
        categories=_read_json(fixtures_dir / "categories.json"),
        influencers=_read_json(fixtures_dir / "influencers.json"),
    )


class SeedEngine:
    """
    Seeds categories, influencers and the admin user, in that order.

    Each collection is only seeded while it is empty, and the admin is
    created whenever it is missing, so every startup re-checks the seed.
    The run is wrapped in a seed marker: a run that finds another one in
    progress is skipped. A failed run releases the marker and re-raises so
    the next startup can try again.
    """

    def __init__(
        self,
        data: DataAccess,
        settings: "Settings",
        fixtures: Optional[FixtureSet] = None,
    ):
        self._data = data
        self._settings = settings
        self._fixtures = fixtures

    async def run(self) -> SeedReport:
        guard = self._data.seed_guard

        if not await guard.acquire(SEED_KEY):
            logger.info("Seed already in progress, skipping", key=SEED_KEY)
            return SeedReport(skipped=True)

        fixtures = self._fixtures
        if fixtures is None:
            fixtures = load_fixtures(self._settings.fixtures_dir)

        report = SeedReport()
        try:
            report.categories = await self._seed_categories(fixtures.categories)
            report.influencers = await self._seed_influencers(fixtures.influencers)
            report.admin_created = await self._ensure_admin()
        except Exception:
            await guard.release(SEED_KEY)
            logger.error("Seed failed, marker released", key=SEED_KEY, exc_info=True)
            raise

        await guard.complete(SEED_KEY)
        logger.info("Seed complete", **asdict(report))
        return report

    async def _seed_categories(self, fixtures: Sequence[Mapping[str, Any]]) -> int:
        store = self._data.categories
        if await store.count({}) > 0:
            return 0

        items = list(fixtures) or list(DEFAULT_CATEGORIES)
        logger.info("Categories empty, seeding", count=len(items))

        for item in items:
            doc = dict(item)
            doc["label"] = doc.get("label") or doc.get("name")
            doc["name"] = doc.get("name") or doc.get("label")
            await store.create(doc)
        return len(items)

    async def _seed_influencers(self, fixtures: Sequence[Mapping[str, Any]]) -> int:
        store = self._data.influencers
        if await store.count({}) > 0:
            return 0

        settings = self._settings
        default_password = settings.seed_influencer_password.get_secret_value()
        logger.info("Influencers empty, seeding", count=len(fixtures))

        for item in fixtures:
            doc = dict(item)
            if not doc.get("joinedDate"):
                doc["joinedDate"] = utcnow().date().isoformat()

            password = doc.get("password")
            if not is_password_hash(password) and (
                not isinstance(password, str) or len(password) < settings.seed_min_password_length
            ):
                doc["password"] = await hash_password_async(
                    default_password, settings.password_hash_rounds
                )

            # Seeded profiles must be visible right away
            doc["status"] = APPROVED
            await store.create(doc)
        return len(fixtures)

    async def _ensure_admin(self) -> bool:
        settings = self._settings
        users = self._data.users
        username = settings.seed_admin_username

        if await users.find_one({"username": username}) is not None:
            return False

        if settings.seed_admin_password is None:
            logger.warning(
                "SEED_ADMIN_PASSWORD not set, default admin not created",
                username=username,
            )
            return False

        hashed = await hash_password_async(
            settings.seed_admin_password.get_secret_value(),
            settings.password_hash_rounds,
        )
        await users.create(
            {
                "username": username,
                "email": settings.seed_admin_email,
                "password": hashed,
                "role": ADMIN_ROLE,
            }
        )
        logger.info("Created default admin", username=username)
        return True
