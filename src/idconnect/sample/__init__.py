"""Sample directory connector backed by SQLAlchemy."""

from idconnect.sample.connector import DirectoryConnector

__all__ = ["DirectoryConnector"]
