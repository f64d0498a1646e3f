import math

import pytest

from app.models.items import ScoredItem, SearchOptions
from app.services.embeddings import EmbeddingResult, HashEmbeddingProvider, OpenAIEmbeddingProvider
from app.services.semantic_matcher import EmbeddingConfigError, SemanticMatcher
from fakes import CountingFetch, FailingEmbedder, StubEmbedder, make_item


def _unit(cos):
    # 2-d unit vector whose cosine with [1, 0] is `cos`
    return [cos, math.sqrt(1 - cos * cos)]


def test_red_wallet_example(cfg):
    items = [make_item(1, "Red Wallet"), make_item(2, "Black Backpack")]
    embed = StubEmbedder({
        "red wallet with cards": [1.0, 0.0],
        "Red Wallet": _unit(0.9),
        "Black Backpack": _unit(0.1),
    })
    matcher = SemanticMatcher(CountingFetch(items), embed, cfg)

    results = matcher.search("red wallet with cards")

    assert [r.id for r in results] == ["1"]
    assert results[0].match_score == pytest.approx(0.9, abs=1e-6)
    assert results[0].model_dump(by_alias=True)["matchScore"] == pytest.approx(0.9, abs=1e-6)


@pytest.mark.parametrize("query", ["", "   ", "\n\t"])
def test_blank_query_makes_no_calls(cfg, query):
    fetch = CountingFetch([make_item(1, "Red Wallet")])
    embed = StubEmbedder({}, default=[1.0])
    matcher = SemanticMatcher(fetch, embed, cfg)

    assert matcher.search(query, SearchOptions(limit=5, min_score=-1)) == []
    assert fetch.calls == 0
    assert embed.calls == []


def test_limit_zero_returns_empty(cfg):
    matcher = SemanticMatcher(CountingFetch([make_item(1, "Red Wallet")]), StubEmbedder({}, default=[1.0]), cfg)
    assert matcher.search("red wallet", SearchOptions(limit=0, min_score=-1)) == []


def test_no_candidates_skips_embedding(cfg):
    embed = StubEmbedder({}, default=[1.0])
    matcher = SemanticMatcher(CountingFetch([]), embed, cfg)
    assert matcher.search("red wallet") == []
    assert embed.calls == []


def test_query_equal_to_title_scores_highest(cfg):
    items = [make_item(i, t) for i, t in enumerate(["Black Backpack", "Red Wallet", "Blue Pen", "Calculator"])]
    provider = HashEmbeddingProvider(dim=64)
    matcher = SemanticMatcher(CountingFetch(items), provider.embed_texts, cfg)

    results = matcher.search("Red Wallet", SearchOptions(limit=10, min_score=-1.0))

    assert results[0].title == "Red Wallet"
    assert results[0].match_score == pytest.approx(1.0, abs=1e-5)
    assert all(r.match_score < results[0].match_score for r in results[1:])


def test_sorted_filtered_and_limited(cfg):
    scores = [0.2, 0.8, 0.5, 0.31, 0.3, 0.9]
    items = [make_item(i, f"item {i}") for i in range(len(scores))]
    vectors = {f"item {i}": _unit(s) for i, s in enumerate(scores)}
    vectors["query"] = [1.0, 0.0]
    matcher = SemanticMatcher(CountingFetch(items), StubEmbedder(vectors), cfg)

    results = matcher.search("query", SearchOptions(limit=3, min_score=0.3))
    assert [r.id for r in results] == ["5", "1", "2"]

    results = matcher.search("query", SearchOptions(limit=20, min_score=0.3))
    got = [r.match_score for r in results]
    assert got == sorted(got, reverse=True)
    assert all(s >= 0.3 - 1e-6 for s in got)
    assert "0" not in [r.id for r in results]


def test_ties_keep_fetch_order(cfg):
    items = [make_item(i, f"same {i}") for i in range(5)]
    embed = StubEmbedder({"q": [1.0, 0.0]}, default=[1.0, 1.0])
    matcher = SemanticMatcher(CountingFetch(items), embed, cfg)
    assert [r.id for r in matcher.search("q")] == ["0", "1", "2", "3", "4"]


def test_default_options_come_from_settings(cfg):
    cfg.SEARCH_DEFAULT_LIMIT = 2
    cfg.SEARCH_DEFAULT_MIN_SCORE = 0.5
    matcher = SemanticMatcher(CountingFetch([]), StubEmbedder({}), cfg)
    assert matcher.options() == SearchOptions(limit=2, min_score=0.5)
    assert matcher.options(limit=7) == SearchOptions(limit=7, min_score=0.5)


def test_candidates_are_embedded_in_batches_of_ten(cfg):
    items = [make_item(i, f"thing {i}") for i in range(25)]
    embed = StubEmbedder({}, default=[1.0, 0.0])
    SemanticMatcher(CountingFetch(items), embed, cfg).search("thing")
    assert [len(c) for c in embed.calls] == [1, 10, 10, 5]
    assert embed.calls[0] == ["thing"]
    assert [t for c in embed.calls[1:] for t in c] == [f"thing {i}" for i in range(25)]


def test_batching_is_transparent(cfg):
    items = [make_item(i, f"item number {i}", color=["red", "blue", "green"][i % 3]) for i in range(25)]
    opts = SearchOptions(limit=100, min_score=-1.0)
    provider = HashEmbeddingProvider(dim=64, max_batch=25)

    batched = SemanticMatcher(CountingFetch(items), provider.embed_texts, cfg).search("item number 7", opts)
    single_cfg = cfg.model_copy(update={"EMBEDDING_BATCH_SIZE": 25})
    single = SemanticMatcher(CountingFetch(items), provider.embed_texts, single_cfg).search("item number 7", opts)

    assert len(batched) == len(single) == 25
    assert {r.id: r.match_score for r in batched} == {r.id: r.match_score for r in single}


def test_mismatched_vector_length_scores_zero_for_that_item_only(cfg):
    items = [make_item(1, "good"), make_item(2, "broken")]
    embed = StubEmbedder({"q": [1.0, 0.0], "good": [1.0, 0.0], "broken": [1.0, 0.0, 0.0]})
    results = SemanticMatcher(CountingFetch(items), embed, cfg).search("q", SearchOptions(min_score=-1.0))
    assert [(r.id, r.match_score) for r in results] == [("1", pytest.approx(1.0)), ("2", 0.0)]


def test_provider_error_falls_back_to_lexical(cfg):
    items = [make_item(1, "Red Wallet"), make_item(2, "Blue Pen")]
    embed = FailingEmbedder(EmbeddingResult.provider_error("timeout"))
    matcher = SemanticMatcher(CountingFetch(items), embed, cfg)

    outcome = matcher.run("red shoes")

    assert outcome.mode == "lexical"
    assert [(m.item.id, m.score) for m in outcome.matches] == [("1", pytest.approx(0.5))]
    assert matcher.search("red wallet")[0].match_score == pytest.approx(1.0)


def test_fallback_ignores_min_score_but_drops_zero(cfg):
    items = [make_item(1, "Red Wallet"), make_item(2, "Blue Pen"), make_item(3, "Green Cap")]
    matcher = SemanticMatcher(CountingFetch(items), FailingEmbedder(EmbeddingResult.provider_error("down")), cfg)
    results = matcher.search("red pen bag cap", SearchOptions(limit=20, min_score=0.9))
    assert [r.id for r in results] == ["1", "2", "3"]
    assert all(0 < r.match_score < 0.9 for r in results)


def test_provider_error_in_later_batch_falls_back(cfg):
    items = [make_item(i, f"wallet {i}") for i in range(15)]
    calls = []

    def embed(texts):
        calls.append(texts)
        if len(calls) == 3:
            return EmbeddingResult.provider_error("rate_limited")
        return EmbeddingResult.ok([[1.0, 0.0] for _ in texts])

    outcome = SemanticMatcher(CountingFetch(items), embed, cfg).run("wallet", SearchOptions(limit=3))
    assert outcome.mode == "lexical"
    assert [m.item.id for m in outcome.matches] == ["0", "1", "2"]


def test_raising_embedder_is_treated_as_provider_error(cfg):
    def embed(texts):
        raise ConnectionError("network down")

    outcome = SemanticMatcher(CountingFetch([make_item(1, "Red Wallet")]), embed, cfg).run("wallet")
    assert outcome.mode == "lexical"
    assert len(outcome.matches) == 1


def test_short_response_is_treated_as_provider_error(cfg):
    def embed(texts):
        return EmbeddingResult.ok([[1.0, 0.0]])

    items = [make_item(1, "Red Wallet"), make_item(2, "Red Pen")]
    outcome = SemanticMatcher(CountingFetch(items), embed, cfg).run("red")
    assert outcome.mode == "lexical"
    assert [m.item.id for m in outcome.matches] == ["1", "2"]


def test_missing_credential_raises_without_fallback(cfg):
    fetch = CountingFetch([make_item(1, "Red Wallet")])
    provider = OpenAIEmbeddingProvider(api_key=None)
    matcher = SemanticMatcher(fetch, provider.embed_texts, cfg)

    with pytest.raises(EmbeddingConfigError):
        matcher.search("red wallet")
    assert fetch.calls == 1


def test_config_error_mid_batch_is_not_masked(cfg):
    calls = []

    def embed(texts):
        calls.append(texts)
        if len(calls) > 1:
            return EmbeddingResult.config_error("OpenAI authentication failed")
        return EmbeddingResult.ok([[1.0]])

    matcher = SemanticMatcher(CountingFetch([make_item(1, "Red Wallet")]), embed, cfg)
    with pytest.raises(EmbeddingConfigError, match="authentication"):
        matcher.search("red wallet")


def test_fetch_errors_propagate(cfg):
    def fetch():
        raise RuntimeError("firestore unavailable")

    matcher = SemanticMatcher(fetch, StubEmbedder({}, default=[1.0]), cfg)
    with pytest.raises(RuntimeError, match="firestore"):
        matcher.search("red wallet")


def test_module_search_uses_settings_defaults_and_returns_untagged_items(cfg, monkeypatch):
    from app.services import semantic_matcher as sm

    cfg.SEARCH_DEFAULT_LIMIT = 1
    cfg.SEARCH_DEFAULT_MIN_SCORE = 0.95
    items = [make_item(1, "Red Wallet"), make_item(2, "Red Pen"), make_item(3, "Blue Cap")]
    embed = StubEmbedder({
        "red wallet": [1.0, 0.0],
        "Red Wallet": [1.0, 0.0],
        "Red Pen": _unit(0.9),
        "Blue Cap": _unit(0.1),
    })
    monkeypatch.setattr(sm, "_singleton", SemanticMatcher(CountingFetch(items), embed, cfg))

    results = sm.search_lost_items_by_similarity("red wallet")
    assert [(r.id, r.match_score) for r in results] == [("1", pytest.approx(1.0))]
    assert all(type(r) is ScoredItem for r in results)
    assert "source" not in results[0].model_dump(by_alias=True)

    results = sm.search_lost_items_by_similarity("red wallet", limit=5, min_score=0.3)
    assert [r.id for r in results] == ["1", "2"]


def test_get_matcher_unknown_provider_raises_and_caches_nothing(cfg, monkeypatch):
    from app.services import semantic_matcher as sm

    monkeypatch.setattr(sm, "_singleton", None)
    monkeypatch.setattr(sm, "default_settings", cfg.model_copy(update={"EMBEDDING_PROVIDER": "gemini"}))

    with pytest.raises(ValueError, match="gemini"):
        sm.get_matcher()
    assert sm._singleton is None
