import pytest

from config import Settings


@pytest.fixture
def cfg():
    return Settings(_env_file=None, OPENAI_API_KEY=None, EMBEDDING_PROVIDER="hash", EMBEDDING_DIM=64)
