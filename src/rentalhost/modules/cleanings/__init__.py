from rentalhost.modules.cleanings.notifier import CleanerNotifier
from rentalhost.modules.cleanings.service import CleaningService

__all__ = ["CleanerNotifier", "CleaningService"]
