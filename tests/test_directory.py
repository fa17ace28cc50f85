# tests/test_directory.py
"""Tests for container listing and permission document access."""

import pytest

from podgate.directory import ResourceDirectory
from podgate.errors import TransientIOFailure

from .conftest import OWNER_ADDRESS, OWNER_WEBID, RESOURCE

PRIVATE = "https://x/private/"
SUB = PRIVATE + "sub/"


@pytest.fixture
def directory(storage):
    return ResourceDirectory(storage)


class TestWalk:
    """Tests for recursive listing."""

    def test_nested_containers(self, storage, directory):
        storage.add_container(SUB)
        storage.documents[SUB + "g.txt"] = "g"
        assert directory.walk(PRIVATE) == [RESOURCE, SUB, SUB + "g.txt"]

    def test_permission_documents_are_not_listed(self, directory):
        assert RESOURCE + ".acl" not in directory.walk(PRIVATE)

    def test_broken_nested_container_is_skipped(self, storage, directory):
        """A nested container answering 500 is skipped, its siblings are still listed."""
        storage.add_container(SUB)
        storage.documents[SUB + "g.txt"] = "g"
        storage.statuses[SUB] = 500
        assert directory.walk(PRIVATE) == [RESOURCE, SUB]

    def test_broken_root_container_raises(self, storage, directory):
        storage.statuses[PRIVATE] = 500
        with pytest.raises(TransientIOFailure):
            directory.walk(PRIVATE)


class TestPermissionDocuments:
    """Tests for <resource>.acl access."""

    def test_fetch_sends_acl_link(self, directory):
        doc = directory.fetch_permission_document(RESOURCE)
        assert doc.url == RESOURCE + ".acl"
        assert doc.has_subject(doc.fragment("owner"))

    def test_missing_permission_document(self, directory):
        assert directory.fetch_permission_document("https://x/private/none.txt") is None

    def test_owner_address_from_profile(self, directory):
        assert directory.ethereum_address(OWNER_WEBID) == OWNER_ADDRESS
