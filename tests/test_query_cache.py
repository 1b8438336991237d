"""Tests for the content-addressed answer cache."""

from datetime import datetime, timedelta, timezone

import pytest

from help_assistant.query.cache import QueryCache, build_cache_key, hash_query, normalize_query


@pytest.fixture
def cache(fake_store, settings):
    return QueryCache(fake_store, settings)


@pytest.mark.parametrize(
    "variant",
    [
        "¿Cómo creo un horario?",
        "cómo creo un horario",
        "  ¿CÓMO   creo un horario?  ",
        "¿Cómo creo un horario?!",
        "Cómo, creo un horario.",
        "cómo\tcreo\nun horario;:",
    ],
)
def test_equivalent_questions_hash_identically(variant):
    assert hash_query(variant) == hash_query("Cómo creo un horario")


def test_different_questions_hash_differently():
    assert hash_query("¿Cómo creo un horario?") != hash_query("¿Cómo cierro un horario?")


def test_normalize_query():
    assert normalize_query("  ¡Hola,   Mundo!  ") == "hola mundo"


def test_hash_is_sha256_hex():
    digest = hash_query("hola")
    assert len(digest) == 64
    int(digest, 16)


def test_cache_key_includes_ui_path():
    assert build_cache_key("¿Qué es?", "/appointments") == "[/appointments] ¿Qué es?"
    assert build_cache_key("¿Qué es?", None) == "¿Qué es?"
    assert hash_query(build_cache_key("hola", "/appointments")) != hash_query(
        build_cache_key("hola", "/dashboard/blog")
    )


def test_miss_on_empty_cache(cache):
    assert cache.check("¿Cómo creo un horario?") is None


def test_save_then_check_hits_and_increments(cache, fake_store):
    cache.save("¿Cómo creo un horario?", "Ve a Citas.", ["appointments"], [1, 2])

    hit = cache.check("  ¿CÓMO creo un horario  ")

    assert hit is not None
    assert hit.response == "Ve a Citas."
    assert hit.modules_used == ["appointments"]
    assert hit.chunks_used == [1, 2]
    assert fake_store.cache[hash_query("¿Cómo creo un horario?")]["hit_count"] == 1

    cache.check("¿Cómo creo un horario?")
    assert fake_store.cache[hash_query("¿Cómo creo un horario?")]["hit_count"] == 2


def test_save_overwrite_resets_hit_count_and_expiry(cache, fake_store, settings):
    cache.save("pregunta", "vieja", ["blog"], [1])
    cache.check("pregunta")
    cache.check("pregunta")

    cache.save("pregunta", "nueva", ["appointments"], [2])

    entry = fake_store.cache[hash_query("pregunta")]
    assert entry["response"] == "nueva"
    assert entry["hit_count"] == 0
    assert entry["query_text"] == "pregunta"
    expires_at = datetime.fromisoformat(entry["expires_at"])
    expected = datetime.now(timezone.utc) + timedelta(hours=settings.CACHE_TTL_HOURS)
    assert abs((expires_at - expected).total_seconds()) < 60


def test_expired_entry_is_miss_and_deleted(cache, fake_store):
    query_hash = hash_query("pregunta")
    fake_store.cache[query_hash] = {
        "query_hash": query_hash,
        "query_text": "pregunta",
        "response": "vieja",
        "modules_used": ["blog"],
        "chunks_used": [],
        "hit_count": 3,
        "expires_at": (datetime.now(timezone.utc) - timedelta(minutes=1)).isoformat(),
    }

    assert cache.check("pregunta") is None
    assert query_hash not in fake_store.cache
    assert fake_store.calls_to("increment_cache_hits") == []


def test_hit_count_failure_still_returns_entry(cache, fake_store):
    cache.save("pregunta", "respuesta", [], [])
    fake_store.failing.add("increment_cache_hits")

    assert cache.check("pregunta").response == "respuesta"


def test_invalidate_module(cache, fake_store):
    cache.save("uno", "r1", ["appointments", "blog"], [])
    cache.save("dos", "r2", ["blog"], [])
    cache.save("tres", "r3", ["medical-records"], [])

    assert cache.invalidate("blog") == 2
    assert cache.check("tres") is not None
    assert cache.check("uno") is None


def test_clear_all(cache, fake_store):
    cache.save("uno", "r1", [], [])
    cache.save("dos", "r2", [], [])

    assert cache.clear_all() == 2
    assert fake_store.cache == {}
