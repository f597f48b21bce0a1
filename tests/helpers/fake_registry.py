"""
Fake OCI registry served through httpx.MockTransport.

Stores manifests in memory keyed by repository and digest, answers the
Distribution API manifest endpoints (HEAD and GET) with realistic headers
and error bodies, and can enforce Bearer or Basic auth challenges. Every
request is recorded so tests can assert on outbound traffic.
"""
from __future__ import annotations

import base64
import hashlib
import json
import re
from typing import Dict, List, Optional, Tuple, Union

import httpx

__all__ = ["FakeRegistry", "make_index", "make_manifest"]

_MANIFEST_PATH_RE = re.compile(r"^/v2/(?P<repo>.+)/manifests/(?P<ref>[^/]+)$")

MANIFEST_TYPE = "application/vnd.oci.image.manifest.v1+json"
INDEX_TYPE = "application/vnd.oci.image.index.v1+json"
TOKEN = "fake-token"


def make_manifest(label: str) -> bytes:
    """Build distinct, valid-looking manifest bytes for a label."""
    layer = hashlib.sha256(label.encode()).hexdigest()
    return json.dumps({
        "schemaVersion": 2,
        "mediaType": MANIFEST_TYPE,
        "config": {"mediaType": "application/vnd.oci.image.config.v1+json",
                   "digest": f"sha256:{layer}", "size": 2},
        "layers": [],
    }, sort_keys=True).encode()


def make_index(platforms: Dict[str, str], media_type: str = INDEX_TYPE) -> bytes:
    """Build an index whose entries map "os/arch" to child manifest digests."""
    manifests = []
    for platform, digest in platforms.items():
        os_name, architecture = platform.split("/", 1)
        manifests.append({
            "mediaType": MANIFEST_TYPE,
            "digest": digest,
            "size": 100,
            "platform": {"os": os_name, "architecture": architecture},
        })
    return json.dumps({"schemaVersion": 2, "mediaType": media_type, "manifests": manifests}).encode()


class FakeRegistry:
    """
    In-memory registry for testing.

    This is a test double; not for production use.

    Args:
        host: Registry host the fake answers for
        auth: None (open), "bearer" or "basic"
        credentials: (username, password) required when auth is set;
            None lets anonymous clients obtain Bearer tokens
    """

    def __init__(self, host: str = "index.docker.io", *, auth: Optional[str] = None,
                 credentials: Optional[Tuple[str, str]] = None):
        self.host = host
        self.auth = auth
        self.credentials = credentials
        # Methods whose responses carry Docker-Content-Digest
        self.digest_header_on = {"HEAD", "GET"}
        self.requests: List[httpx.Request] = []
        self._manifests: Dict[str, Dict[str, bytes]] = {}  # repo -> {digest: manifest_bytes}
        self._tags: Dict[str, Dict[str, str]] = {}         # repo -> {tag: digest}
        self._failures: List[Union[int, str]] = []
        self._digest_override: Optional[str] = None

    # Content management

    def push(self, repo: str, manifest: bytes, tag: Optional[str] = None) -> str:
        """Store a manifest, optionally tag it, and return its digest."""
        digest = f"sha256:{hashlib.sha256(manifest).hexdigest()}"
        self._manifests.setdefault(repo, {})[digest] = manifest
        self._tags.setdefault(repo, {})
        if tag:
            self._tags[repo][tag] = digest
        return digest

    def delete(self, repo: str, digest: str) -> None:
        """Delete a manifest and any tags pointing at it."""
        self._manifests[repo].pop(digest, None)
        self._tags[repo] = {t: d for t, d in self._tags[repo].items() if d != digest}

    def fail_next(self, *outcomes: Union[int, str]) -> None:
        """Answer the next requests with these statuses ("network" raises ConnectError)."""
        self._failures.extend(outcomes)

    def report_digest(self, digest: str) -> None:
        """Report this digest in Docker-Content-Digest regardless of content."""
        self._digest_override = digest

    # Inspection

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    @property
    def manifest_requests(self) -> List[httpx.Request]:
        return [r for r in self.requests if "/manifests/" in r.url.path]

    @property
    def token_requests(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path == "/token"]

    # Request handling

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.url.host != self.host:
            raise httpx.ConnectError(f"unknown host {request.url.host}", request=request)

        if self._failures:
            outcome = self._failures.pop(0)
            if outcome == "network":
                raise httpx.ConnectError("connection reset", request=request)
            return httpx.Response(outcome)

        if request.url.path == "/token":
            return self._handle_token(request)

        match = _MANIFEST_PATH_RE.match(request.url.path)
        if not match:
            return self._error(request, 404, "NOT_FOUND")

        challenge = self._challenge(request, match.group("repo"))
        if challenge is not None:
            return challenge

        return self._handle_manifest(request, match.group("repo"), match.group("ref"))

    def _handle_token(self, request: httpx.Request) -> httpx.Response:
        if self.credentials is not None and request.headers.get("Authorization") != self._basic():
            return httpx.Response(401, json={"details": "incorrect username or password"})
        return httpx.Response(200, json={"token": TOKEN, "expires_in": 300})

    def _challenge(self, request: httpx.Request, repo: str) -> Optional[httpx.Response]:
        authorization = request.headers.get("Authorization")
        if self.auth == "bearer" and authorization != f"Bearer {TOKEN}":
            header = (f'Bearer realm="https://{self.host}/token",service="{self.host}",'
                      f'scope="repository:{repo}:pull"')
            return self._error(request, 401, "UNAUTHORIZED", {"WWW-Authenticate": header})
        if self.auth == "basic" and authorization != self._basic():
            return self._error(request, 401, "UNAUTHORIZED",
                               {"WWW-Authenticate": f'Basic realm="https://{self.host}/"'})
        return None

    def _handle_manifest(self, request: httpx.Request, repo: str, ref: str) -> httpx.Response:
        if repo not in self._manifests:
            return self._error(request, 404, "NAME_UNKNOWN")

        digest = ref if ":" in ref else self._tags[repo].get(ref)
        if digest is None or digest not in self._manifests[repo]:
            return self._error(request, 404, "MANIFEST_UNKNOWN")

        manifest = self._manifests[repo][digest]
        headers = {"Content-Type": json.loads(manifest).get("mediaType", MANIFEST_TYPE)}
        if request.method in self.digest_header_on:
            headers["Docker-Content-Digest"] = self._digest_override or digest

        if request.method == "HEAD":
            return httpx.Response(200, headers=headers)
        return httpx.Response(200, headers=headers, content=manifest)

    def _basic(self) -> Optional[str]:
        if self.credentials is None:
            return None
        pair = ":".join(self.credentials).encode()
        return f"Basic {base64.b64encode(pair).decode()}"

    @staticmethod
    def _error(request: httpx.Request, status: int, code: str,
               headers: Optional[dict] = None) -> httpx.Response:
        # HEAD responses carry no body, like real registries
        if request.method == "HEAD":
            return httpx.Response(status, headers=headers)
        body = {"errors": [{"code": code, "message": code.lower().replace("_", " ")}]}
        return httpx.Response(status, headers=headers, json=body)
