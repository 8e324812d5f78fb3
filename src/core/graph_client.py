"""
MS Graph client setup.

One client per application context; the caller closes the credential at
shutdown.
"""

from azure.identity import ClientSecretCredential
from msgraph import GraphServiceClient

from core.config import Settings

GRAPH_SCOPES = ["https://graph.microsoft.com/.default"]


def build_graph_client(settings: Settings) -> tuple[GraphServiceClient, ClientSecretCredential]:
    """
    Create a Graph client from app-only credentials.

    Raises:
        ValueError: if any Graph credential is missing
    """
    missing = [
        name
        for name in ("GRAPH_TENANT_ID", "GRAPH_APP_ID", "GRAPH_CLIENT_SECRET")
        if not getattr(settings, name)
    ]
    if missing:
        raise ValueError(f"Missing Graph settings: {', '.join(missing)}")

    credential = ClientSecretCredential(
        tenant_id=settings.GRAPH_TENANT_ID,
        client_id=settings.GRAPH_APP_ID,
        client_secret=settings.GRAPH_CLIENT_SECRET,
    )
    return GraphServiceClient(credentials=credential, scopes=GRAPH_SCOPES), credential
