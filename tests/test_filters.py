from __future__ import annotations

import asyncio

import pytest

from gtrends_explorer.catalog import CURATED, DEFAULT_GEO, geo_by_iso, term_by_name
from gtrends_explorer.channel import DecompositionChannel
from gtrends_explorer.controller import AcquisitionController, PipelineState
from gtrends_explorer.filters import FilterState
from tests.factories import InstrumentedEngine, make_client


def _state(names: list[str], **kwargs) -> FilterState:
    controller = AcquisitionController(
        trends_client=make_client(names),
        channel=DecompositionChannel(InstrumentedEngine()),
    )
    return FilterState(controller, **kwargs)


def test_select_stages_pending_only() -> None:
    fs = _state(["Influenza"])
    flu = term_by_name("Influenza")
    fs.select_terms([flu])
    fs.select_geo(geo_by_iso("AU"))
    assert fs.affordance_visible
    assert fs.pending.terms == (flu,)
    assert fs.pending.geo.iso == "AU"
    assert fs.confirmed.terms == ()
    assert fs.confirmed.geo == DEFAULT_GEO
    assert fs.controller.run is None


def test_cancel_reverts_to_confirmed() -> None:
    fs = _state(["Influenza"])
    fs.select_terms_by_entity(["/m/0cycc"])
    fs.select_geo_by_iso("br")
    fs.cancel()
    assert not fs.affordance_visible
    assert fs.pending == fs.confirmed
    assert fs.controller.run is None


def test_select_limits_and_dedupes() -> None:
    fs = _state([], max_terms=2)
    flu, cold, measles = (term_by_name(n) for n in ("Influenza", "Cold", "Measles"))
    fs.select_terms([flu, flu, cold])
    assert fs.pending.terms == (flu, cold)
    with pytest.raises(ValueError):
        fs.select_terms([flu, cold, measles])
    with pytest.raises(KeyError):
        fs.select_terms_by_entity(["no-such-entity"])


def test_confirm_requires_terms() -> None:
    async def go() -> FilterState:
        fs = _state([])
        with pytest.raises(ValueError):
            fs.confirm()
        return fs

    fs = asyncio.run(go())
    assert fs.controller.generation == 0


def test_confirm_starts_run_and_pending_edits_do_not_leak() -> None:
    confirmed_seen = []

    async def go() -> FilterState:
        fs = _state(["Influenza", "Cold"], on_confirm=confirmed_seen.append)
        fs.select_terms([term_by_name("Influenza")])
        task = fs.confirm()
        assert not fs.affordance_visible
        # edit while the run is in flight
        fs.select_terms([term_by_name("Cold")])
        await task
        return fs

    fs = asyncio.run(go())
    run = fs.controller.run
    assert fs.controller.state == PipelineState.READY
    assert run.filter.term_names == ["Influenza"]
    assert [s.term for s in run.seasonal] == ["Influenza"]
    assert fs.confirmed.term_names == ["Influenza"]
    assert fs.pending.term_names == ["Cold"]
    assert [f.term_names for f in confirmed_seen] == [["Influenza"]]


def test_load_curated_confirms_directly() -> None:
    curated = CURATED["spring"]

    async def go() -> FilterState:
        fs = _state(curated.term_names)
        await fs.load_curated(curated)
        return fs

    fs = asyncio.run(go())
    assert fs.confirmed == curated
    assert fs.pending == curated
    assert [s.term for s in fs.controller.run.seasonal] == ["Chickenpox", "Conjunctivitis", "Allergy"]
