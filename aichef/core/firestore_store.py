"""Firestore-backed DocumentStore (firebase-admin service account)."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Optional, Sequence

import firebase_admin
from firebase_admin import credentials
from firebase_admin import firestore as admin_firestore
from google.api_core import exceptions as gcp_exceptions
from google.cloud import firestore  # type: ignore
from google.cloud.firestore_v1.base_query import FieldFilter

from aichef.core.config import Settings
from aichef.core.errors import StoreError
from aichef.core.store import Document, DocumentNotFoundError, Filter

logger = logging.getLogger("aichef.store")

APP_NAME = "aichef"


def _service_account_info(cfg: Settings) -> Dict[str, str]:
    # Env files usually carry the PEM with escaped newlines
    private_key = (cfg.FIREBASE_PRIVATE_KEY or "").replace("\\n", "\n")
    return {
        "type": "service_account",
        "project_id": cfg.FIREBASE_PROJECT_ID,
        "client_email": cfg.FIREBASE_CLIENT_EMAIL or "",
        "private_key": private_key,
        "token_uri": "https://oauth2.googleapis.com/token",
    }


def get_firebase_app(cfg: Settings) -> firebase_admin.App:
    """Get or initialize the named Firebase Admin app."""
    try:
        return firebase_admin.get_app(APP_NAME)
    except ValueError:
        pass

    cred = credentials.Certificate(_service_account_info(cfg))
    app = firebase_admin.initialize_app(cred, {"projectId": cfg.FIREBASE_PROJECT_ID}, name=APP_NAME)
    logger.info("Firebase Admin initialized")
    return app


class FirestoreWriteBatch:
    def __init__(self, client: firestore.Client):
        self._client = client
        self._batch = client.batch()

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        self._batch.set(self._client.collection(collection).document(doc_id), data, merge=merge)

    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self._batch.update(self._client.collection(collection).document(doc_id), data)

    def commit(self) -> None:
        try:
            self._batch.commit()
        except gcp_exceptions.NotFound as e:
            raise DocumentNotFoundError(f"Batch target missing: {e.message}")
        except gcp_exceptions.GoogleAPICallError as e:
            raise StoreError(f"Firestore batch commit failed: {e.message}")


class FirestoreDocumentStore:
    """DocumentStore over a google-cloud-firestore client."""

    def __init__(self, client: firestore.Client):
        self._client = client

    @classmethod
    def from_settings(cls, cfg: Settings) -> "FirestoreDocumentStore":
        app = get_firebase_app(cfg)
        return cls(admin_firestore.client(app))

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        try:
            snap = self._client.collection(collection).document(doc_id).get()
        except gcp_exceptions.GoogleAPICallError as e:
            raise StoreError(f"Firestore read failed: {e.message}")
        if not snap.exists:
            return None
        return Document(id=snap.id, data=snap.to_dict() or {})

    def set(self, collection: str, doc_id: str, data: Dict[str, Any], merge: bool = False) -> None:
        try:
            self._client.collection(collection).document(doc_id).set(data, merge=merge)
        except gcp_exceptions.GoogleAPICallError as e:
            raise StoreError(f"Firestore write failed: {e.message}")

    def update(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        try:
            self._client.collection(collection).document(doc_id).update(data)
        except gcp_exceptions.NotFound:
            raise DocumentNotFoundError(f"No document to update: {collection}/{doc_id}")
        except gcp_exceptions.GoogleAPICallError as e:
            raise StoreError(f"Firestore write failed: {e.message}")

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        try:
            _, ref = self._client.collection(collection).add(data)
        except gcp_exceptions.GoogleAPICallError as e:
            raise StoreError(f"Firestore write failed: {e.message}")
        return ref.id

    def find(self, collection: str, filters: Sequence[Filter], limit: Optional[int] = None) -> List[Document]:
        query = self._client.collection(collection)
        for field_path, value in filters:
            query = query.where(filter=FieldFilter(field_path, "==", value))
        if limit is not None:
            query = query.limit(limit)
        try:
            return [Document(id=snap.id, data=snap.to_dict() or {}) for snap in query.stream()]
        except gcp_exceptions.GoogleAPICallError as e:
            raise StoreError(f"Firestore query failed: {e.message}")

    def stream(self, collection: str) -> Iterator[Document]:
        try:
            for snap in self._client.collection(collection).stream():
                yield Document(id=snap.id, data=snap.to_dict() or {})
        except gcp_exceptions.GoogleAPICallError as e:
            raise StoreError(f"Firestore query failed: {e.message}")

    def batch(self) -> FirestoreWriteBatch:
        return FirestoreWriteBatch(self._client)

    def ping(self) -> bool:
        try:
            list(self._client.collection("_health").limit(1).stream())
            return True
        except gcp_exceptions.GoogleAPICallError as e:
            logger.warning(f"[store] ping failed: {e.message}")
            return False
