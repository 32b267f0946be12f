class StorageError(Exception):
    """Base exception for all storage-related errors."""
    pass

class PersistenceError(StorageError):
    """Raised when a write to the durable store fails."""
    pass

class DuplicateUsernameError(PersistenceError):
    """Raised when creating a user whose username is already taken."""
    def __init__(self, username: str):
        self.username = username
        super().__init__(f'User "{username}" already exists.')

class ChangeFeedUnavailable(StorageError):
    """Raised when a backend cannot deliver change notifications."""
    pass
