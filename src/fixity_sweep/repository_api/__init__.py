"""Digital repository API collaborators."""

from fixity_sweep.repository_api.client import RepositoryClient

__all__ = ["RepositoryClient"]
