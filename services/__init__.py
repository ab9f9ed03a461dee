from .coordinator import JobCoordinator, validate_request
from .gcs import ArtifactStoreClient, generate_signed_url, get_bucket_name
from .store import JobRegistry, jobs

__all__ = [
    "jobs",
    "JobRegistry",
    "JobCoordinator",
    "validate_request",
    "ArtifactStoreClient",
    "generate_signed_url",
    "get_bucket_name",
]
