# podgate/directory.py
"""
Resource directory over the storage collaborator.

Lists container members (via the ldp:contains relation of the container's
own graph), fetches graph documents and resolves a resource's companion
permission document (<resource>.acl).
"""

import logging
from typing import List, Optional, Set

from rdflib import URIRef

from .errors import ParseFailure, PodgateError, TransientIOFailure
from .graph import GraphDocument
from .storage import StorageClient
from .vocab import ACL_LINK_HEADER, ACL_SUFFIX, ETHON, LDP, TURTLE

logger = logging.getLogger(__name__)


def is_container(url: str) -> bool:
    return url.endswith("/")


class ResourceDirectory:
    """
    Read and write graph documents on the storage server.

    Args:
        storage: StorageClient (or any object with the same get/head/put/post/delete API)
    """

    def __init__(self, storage: StorageClient):
        self.storage = storage

    def fetch_graph(self, url: str, headers: Optional[dict] = None) -> Optional[GraphDocument]:
        """
        Fetch and parse a Turtle document.

        Returns None if the document does not exist. Raises
        TransientIOFailure for other error statuses and ParseFailure for
        malformed bodies.
        """
        response = self.storage.get(url, accept=TURTLE, headers=headers)
        if response.missing:
            return None
        if not response.ok:
            raise TransientIOFailure(f"GET {url} returned HTTP {response.status}")
        return GraphDocument.parse(url, response.body)

    def list_container(self, container_url: str) -> List[str]:
        """
        List the absolute URLs of a container's members.

        A container that cannot be HEADed (missing, forbidden) is empty.
        """
        head = self.storage.head(container_url)
        if head.status != 200:
            logger.debug(f"Container {container_url} unavailable (HTTP {head.status})")
            return []

        container = self.fetch_graph(container_url)
        if container is None:
            return []

        members = {
            str(member)
            for member in container.objects(None, LDP.contains)
            if isinstance(member, URIRef)
        }
        return sorted(members)

    def walk(self, container_url: str) -> List[str]:
        """
        Recursively list everything below a container.

        Nested containers are included in the result as well as descended
        into, since containers carry their own permission documents. A
        nested container that cannot be listed is skipped; only a failure
        to list container_url itself is raised.
        """
        found: List[str] = []
        seen: Set[str] = {container_url}
        pending = [container_url]

        while pending:
            current = pending.pop(0)
            try:
                members = self.list_container(current)
            except PodgateError as e:
                if current == container_url:
                    raise
                logger.warning(f"Skipping container {current}: {e}")
                continue

            for member in members:
                if member in seen or member.endswith(ACL_SUFFIX):
                    continue
                seen.add(member)
                found.append(member)
                if is_container(member):
                    pending.append(member)

        return found

    def delete(self, url: str) -> None:
        """Delete a resource. Already-deleted resources are not an error."""
        response = self.storage.delete(url)
        if response.ok or response.missing:
            return
        raise TransientIOFailure(f"DELETE {url} returned HTTP {response.status}")

    def post(self, container_url: str, body: str, slug: Optional[str] = None) -> Optional[str]:
        """POST a Turtle document into a container. Returns its Location if given."""
        response = self.storage.post(container_url, body, content_type=TURTLE, slug=slug)
        if not response.ok:
            raise TransientIOFailure(f"POST {container_url} returned HTTP {response.status}")
        return response.headers.get("Location") or response.headers.get("location")

    # Permission documents

    @staticmethod
    def permission_document_url(resource_url: str) -> str:
        return resource_url + ACL_SUFFIX

    def fetch_permission_document(self, resource_url: str) -> Optional[GraphDocument]:
        """Fetch the permission document of a resource, or None if it has none."""
        return self.fetch_graph(
            self.permission_document_url(resource_url),
            headers={"Link": ACL_LINK_HEADER},
        )

    def write_permission_document(self, resource_url: str, doc: GraphDocument) -> None:
        """Replace the permission document of a resource."""
        acl_url = self.permission_document_url(resource_url)
        response = self.storage.put(
            acl_url,
            doc.serialize(),
            content_type=TURTLE,
            headers={"Link": ACL_LINK_HEADER},
        )
        if not response.ok:
            raise TransientIOFailure(f"PUT {acl_url} returned HTTP {response.status}")
        logger.debug(f"Wrote permission document {acl_url} ({len(doc)} triples)")

    # Profiles

    def ethereum_address(self, webid: str) -> Optional[str]:
        """
        Return the Ethereum address published in a WebID profile.

        Returns None if the profile is missing or declares no address.
        """
        profile = self.fetch_graph(webid.split("#", 1)[0])
        if profile is None:
            return None

        subject = URIRef(webid)
        literal = profile.get_literal(subject, ETHON.address)
        if literal is None:
            literal = profile.get_literal(None, ETHON.address)
        if literal is None:
            return None
        if not literal.value:
            raise ParseFailure(f"Empty ethon:address in {webid}")
        return literal.value
