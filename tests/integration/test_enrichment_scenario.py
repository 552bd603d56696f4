from __future__ import annotations

from pathlib import Path

import pytest

from placematch.common.fs import read_json
from placematch.pipeline.orchestrator import EnrichmentOrchestrator, RunOptions


def scenario_records(make_record):
    prior = {
        "externalId": "place-old",
        "mapsUrl": "https://maps.example.test/old",
        "matchConfidence": 90,
        "enrichedAt": "2026-02-01T00:00:00.000+00:00",
        "apiVersion": "v1",
    }
    return [
        make_record("bar", "Blue Iguana Beach Bar", lat=19.3340, lng=-81.3810),
        make_record("grill", "Island Grill"),
        make_record("shop", "The Shop", location={"area": "George Town"}),
        make_record("club", "Rum Point Club", lat=19.37, lng=-81.27, enrichment=prior),
    ]


@pytest.mark.integration
def test_three_record_scenario_outcomes(tmp_path: Path, bundle, fixed_now, write_input, make_record, make_place, fake_directory_cls):
    write_input(bundle, tmp_path, scenario_records(make_record))
    directory = fake_directory_cls(
        [
            make_place("place-bar", "Blue Iguana Beach Bar", 19.3342, -81.3812),
            make_place("place-hw", "Cayman Hardware Depot", 19.2950, -81.3800),
        ]
    )

    report = EnrichmentOrchestrator(bundle, tmp_path, "run-scenario", directory=directory, now=fixed_now).run(RunOptions())

    progress = read_json(bundle.path(tmp_path, "progress"))
    assert progress["outcomes"] == {
        "bar": "enriched",
        "grill": "skipped",
        "shop": "failed",
        "club": "already-enriched",
    }
    assert progress["failed"]["shop"]["error_code"] == "NO_MATCH"
    assert progress["currentPhase"] == "completed"
    assert report.outcomes == {"enriched": 1, "failed": 1, "skipped": 1, "already-enriched": 1}

    # skipped and already-enriched records cost nothing
    assert len(directory.search_calls) == 2
    assert directory.details_calls == ["place-bar"]

    output = {item["id"]: item for item in read_json(bundle.path(tmp_path, "output"))}
    assert list(output) == ["bar", "grill", "shop", "club"]
    bar = output["bar"]
    assert bar["location"]["directoryId"] == "place-bar"
    assert bar["contact"]["phone"] == "+1 345-555-0100"
    assert bar["enrichment"]["matchConfidence"] >= 90
    assert bar["enrichment"]["enrichedAt"] == "2026-03-01T12:00:00.000+00:00"
    assert bar["quality"]["hasPhone"] is True
    assert "enrichment" not in output["shop"]
    assert output["club"]["enrichment"]["externalId"] == "place-old"

    stats = read_json(bundle.path(tmp_path, "stats"))
    assert stats["apiCalls"] == {"search": 2, "details": 1, "photo": 0}
    assert stats["improvements"]["phonesAdded"] == 1
    assert stats["estimatedCost"]["total"] == pytest.approx((2 * 32 + 17) / 1000, abs=1e-4)
    assert list((tmp_path / "backups").glob("unified-knowledge-base-*.json"))


@pytest.mark.integration
def test_linked_record_goes_straight_to_details(tmp_path: Path, bundle, fixed_now, write_input, make_record, make_place, fake_directory_cls):
    write_input(
        bundle,
        tmp_path,
        [make_record("linked", "Rum Point Club", location={"directoryId": "place-rum", "area": "North Side"})],
    )
    directory = fake_directory_cls([make_place("place-rum", "Rum Point Club", 19.37, -81.27)])

    EnrichmentOrchestrator(bundle, tmp_path, "run-linked", directory=directory, now=fixed_now).run(RunOptions())

    assert directory.search_calls == []
    assert directory.details_calls == ["place-rum"]
    item = read_json(bundle.path(tmp_path, "output"))[0]
    assert item["enrichment"]["matchConfidence"] == 100
    assert item["location"]["coordinates"] == {"lat": 19.37, "lng": -81.27}


@pytest.mark.integration
def test_category_filter_and_limit(tmp_path: Path, bundle, fixed_now, write_input, make_record, make_place, fake_directory_cls):
    records = [
        make_record("a", "Harbour Cafe", lat=19.30, lng=-81.38, category="Restaurant"),
        make_record("b", "Harbour Dive", lat=19.31, lng=-81.38, category="dive"),
        make_record("c", "Harbour Grill", lat=19.32, lng=-81.38, category="restaurant"),
    ]
    write_input(bundle, tmp_path, records)
    directory = fake_directory_cls([make_place("p-a", "Harbour Cafe", 19.30, -81.38)])

    report = EnrichmentOrchestrator(bundle, tmp_path, "run-filter", directory=directory, now=fixed_now).run(
        RunOptions(category="restaurant", limit=1)
    )

    assert report.outcomes["enriched"] == 1
    assert sum(report.outcomes.values()) == 1
    assert len(read_json(bundle.path(tmp_path, "output"))) == 3


@pytest.mark.integration
def test_dry_run_makes_no_calls_and_writes_no_state(tmp_path: Path, bundle, fixed_now, write_input, make_record):
    write_input(bundle, tmp_path, scenario_records(make_record))

    report = EnrichmentOrchestrator(bundle, tmp_path, "run-dry", now=fixed_now).run(RunOptions(dry_run=True))

    analysis = report.analysis
    assert analysis["totalRecords"] == 4
    assert analysis["alreadyEnriched"] == 1
    assert analysis["wouldSkip"] == 1
    assert analysis["toProcess"] == 2
    assert analysis["estimatedCalls"] == {"search": 2, "details": 2, "photo": 20}
    assert not bundle.path(tmp_path, "progress").exists()
    assert not bundle.path(tmp_path, "output").exists()


@pytest.mark.integration
def test_seed_coordinates_outside_region_are_not_trusted(
    tmp_path: Path, bundle, fixed_now, write_input, make_record, make_place, fake_directory_cls
):
    write_input(bundle, tmp_path, [make_record("stray", "Harbour Cafe", lat=25.0, lng=-80.0)])
    directory = fake_directory_cls([make_place("p-a", "Harbour Cafe", 19.30, -81.38)])

    report = EnrichmentOrchestrator(bundle, tmp_path, "run-stray", directory=directory, now=fixed_now).run(RunOptions())

    assert report.outcomes["enriched"] == 1
    assert directory.search_biases == [None]
    item = read_json(bundle.path(tmp_path, "output"))[0]
    # neutral proximity gives 85, enough to replace the stray seed coordinates
    assert item["enrichment"]["matchConfidence"] == 85
    assert item["location"]["coordinates"] == {"lat": 19.30, "lng": -81.38}
