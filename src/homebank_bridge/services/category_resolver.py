from homebank_bridge.domain.csv_codec import CATEGORY_SEPARATOR
from homebank_bridge.logger import get_logger
from homebank_bridge.models import CategoryType
from homebank_bridge.repositories.category_repository import CategoryRepository

logger = get_logger(__name__)


def split_path(path: str) -> list[str]:
    return [segment.strip() for segment in path.split(CATEGORY_SEPARATOR) if segment.strip()]


class CategoryResolver:
    """Find-or-create ``Parent:Child`` category paths.

    One resolver serves one import batch. Results are memoised by the literal
    path string, so repeated paths in the batch never touch the store again.
    """

    def __init__(self, categories: CategoryRepository) -> None:
        self.categories = categories
        self._cache: dict[str, int | None] = {}
        self.created = 0

    def resolve(self, path: str | None, amount: float | None = None) -> int | None:
        if not path:
            return None
        if path in self._cache:
            return self._cache[path]

        parent_id: int | None = None
        for name in split_path(path):
            category_id = self.categories.find_child(name, parent_id)
            if category_id is None:
                category_type = CategoryType.for_amount(amount)
                category_id = self.categories.insert(name, category_type, parent_id)
                self.created += 1
                logger.debug("[IMPORT] Created category '%s' (%s) under %s.", name, category_type.value, parent_id)
            parent_id = category_id

        self._cache[path] = parent_id
        return parent_id
