"""Bulk import and cleanup of sample GoodWorks.

Every imported GoodWork is tagged ``TEST_DATA`` so the whole batch can be
counted and removed again without touching real records.
"""

import json
import logging
from pathlib import Path
from typing import List, Optional, Union

from pydantic import TypeAdapter

from .exceptions import ValidationError
from .models import GoodWork
from .repository import GoodWorkRepository

logger = logging.getLogger("goodworks_agensgraph")
logger.setLevel(logging.INFO)

TEST_DATA_TAG = "TEST_DATA"
DEFAULT_SEED_USER = "test-data"
DEFAULT_DATA_PATH = Path(__file__).parent / "data" / "good-works-test-data.json"

_good_work_list = TypeAdapter(List[GoodWork])


class SeedDataService:
    """Loads GoodWorks from a JSON list file through the repository.

    Args:
        repository: Repository used for every create and delete.
        path: JSON file holding a list of GoodWork objects. Defaults to the
            sample file shipped with the package.
    """

    def __init__(
        self,
        repository: GoodWorkRepository,
        path: Optional[Union[str, Path]] = None,
    ):
        self.repository = repository
        self.path = Path(path) if path is not None else DEFAULT_DATA_PATH

    def _load(self) -> List[GoodWork]:
        with open(self.path, encoding="utf-8") as f:
            return _good_work_list.validate_python(json.load(f))

    def preview(self) -> List[GoodWork]:
        """Parse the data file without writing anything; ``[]`` when it is missing."""
        if not self.path.exists():
            return []
        return self._load()

    async def import_test_data(self, user_id: Optional[str] = None) -> int:
        """Create every GoodWork in the file and return how many were stored.

        Items that fail to import are logged and skipped.
        """
        if not self.path.exists():
            raise FileNotFoundError(f"Test data file not found at: {self.path}")

        works = self._load()
        if not works:
            raise ValidationError(f"No test data found in {self.path}")

        creator = user_id or DEFAULT_SEED_USER
        imported = 0
        for work in works:
            tags = work.tags if TEST_DATA_TAG in work.tags else [*work.tags, TEST_DATA_TAG]
            work = work.model_copy(update={"id": None, "tags": tags})
            try:
                await self.repository.create_good_work(work, creator)
                imported += 1
            except Exception as e:
                logger.error(f"Error importing '{work.name}': {e}")

        logger.info(f"Imported {imported} of {len(works)} test GoodWorks")
        return imported

    async def delete_all_test_data(self) -> int:
        return await self.repository.delete_by_tag(TEST_DATA_TAG)

    async def count_test_data(self) -> int:
        return await self.repository.count_by_tag(TEST_DATA_TAG)
