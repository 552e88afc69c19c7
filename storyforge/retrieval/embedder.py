"""Embedding service for evidence chunks and retrieval queries.

Uses Amazon Titan Embeddings via AWS Bedrock.
"""

import json
import logging
import os
from typing import Protocol

import boto3
from botocore.config import Config

logger = logging.getLogger(__name__)


class Embedder(Protocol):
    """Turns texts into vectors, one per input, in order."""

    def embed(self, texts: list[str]) -> list[list[float]]: ...


class TitanEmbedder:
    """Generate embeddings using Amazon Titan via AWS Bedrock.

    Uses amazon.titan-embed-text-v2:0 which produces 1024-dimension embeddings
    and supports up to 8,192 tokens per input.
    """

    MODEL_ID = "amazon.titan-embed-text-v2:0"
    EMBEDDING_DIMENSION = 1024
    MAX_TOKENS = 8192

    def __init__(
        self,
        region: str | None = None,
        profile: str | None = None,
        model_id: str | None = None,
    ):
        """Initialize the Titan embedder.

        Args:
            region: AWS region for Bedrock. Defaults to AWS_REGION env var.
            profile: AWS profile to use. Defaults to AWS_PROFILE env var.
            model_id: Override for the embedding model. Defaults to
                EMBEDDING_MODEL_ID env var, then Titan v2.
        """
        self.region = region or os.environ.get("AWS_REGION", "us-east-1")
        self.profile = profile or os.environ.get("AWS_PROFILE")
        self.model_id = model_id or os.environ.get("EMBEDDING_MODEL_ID", self.MODEL_ID)

        # Throttling is common on bulk indexing; adaptive mode backs off client-side
        config = Config(
            retries={"max_attempts": 3, "mode": "adaptive"},
            read_timeout=30,
            connect_timeout=10,
        )

        session_kwargs = {}
        if self.profile:
            session_kwargs["profile_name"] = self.profile

        session = boto3.Session(**session_kwargs)
        self.client = session.client(
            "bedrock-runtime",
            region_name=self.region,
            config=config,
        )

        logger.info(f"TitanEmbedder initialized with region={self.region}, model={self.model_id}")

    def embed_one(self, text: str) -> list[float]:
        """Generate the embedding for a single text.

        Raises:
            ValueError: If the text is empty.
        """
        if not text or not text.strip():
            raise ValueError("Text cannot be empty")

        # Rough estimate: 4 chars per token
        max_chars = self.MAX_TOKENS * 4
        if len(text) > max_chars:
            logger.warning(f"Text truncated from {len(text)} to {max_chars} chars for embedding")
            text = text[:max_chars]

        response = self.client.invoke_model(
            modelId=self.model_id,
            body=json.dumps({"inputText": text}),
            contentType="application/json",
            accept="application/json",
        )
        result = json.loads(response["body"].read())
        return result["embedding"]

    def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts.

        Titan has no batch API, so texts are embedded one at a time.
        """
        embeddings = []
        for i, text in enumerate(texts):
            try:
                embeddings.append(self.embed_one(text))
            except Exception as e:
                logger.error(f"Failed to embed text {i}: {e}")
                raise
        logger.debug(f"Generated {len(embeddings)} embeddings")
        return embeddings

    @property
    def dimension(self) -> int:
        return self.EMBEDDING_DIMENSION
