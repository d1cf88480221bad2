"""Tests for the freeco CLI."""

import asyncio
import json
import tempfile
from pathlib import Path

import yaml
from click.testing import CliRunner

from freeco.cli import main
from freeco.entities.models import EntityFamily, Listing, ListingStatus, User
from freeco.services import build_services


def _seed(tmpdir: str, *entities):
    services = build_services(tmpdir)

    async def run():
        for entity in entities:
            await services.store.insert(entity)

    asyncio.run(run())
    return services


def test_version():
    result = CliRunner().invoke(main, ["--version"])
    assert result.exit_code == 0
    assert "0.1.0" in result.output


def test_stats():
    with tempfile.TemporaryDirectory() as tmpdir:
        _seed(tmpdir, Listing(id="L1", listing_type="job", title="Cook", user="U1"))
        result = CliRunner().invoke(main, ["--data-dir", tmpdir, "stats"])
        assert result.exit_code == 0, result.output
        assert "Listings" in result.output
        assert "pending" in result.output


def test_pending_queue():
    with tempfile.TemporaryDirectory() as tmpdir:
        _seed(tmpdir, Listing(id="L1", listing_type="job", title="Cook", user="U1"))
        result = CliRunner().invoke(main, ["--data-dir", tmpdir, "pending", "listings"])
        assert result.exit_code == 0, result.output
        assert "L1" in result.output

        result = CliRunner().invoke(main, ["--data-dir", tmpdir, "pending", "users"])
        assert result.exit_code == 0
        assert "No users" in result.output


def test_moderate():
    with tempfile.TemporaryDirectory() as tmpdir:
        services = _seed(tmpdir, Listing(id="L1", listing_type="job", title="Cook", user="U1"))
        result = CliRunner().invoke(
            main,
            ["--data-dir", tmpdir, "--actor-id", "ops", "moderate", "listings", "L1", "reject", "-r", "Spam"],
        )
        assert result.exit_code == 0, result.output
        assert "Listing rejected" in result.output

        listing = asyncio.run(services.store.find_by_id(EntityFamily.listing, "L1"))
        assert listing.status is ListingStatus.rejected
        assert listing.rejection_reason == "Spam"
        assert listing.moderated_by == "ops"


def test_moderate_reports_domain_errors():
    with tempfile.TemporaryDirectory() as tmpdir:
        result = CliRunner().invoke(main, ["--data-dir", tmpdir, "moderate", "listings", "L1", "approve"])
        assert result.exit_code == 1
        assert "not_found" in result.output

        result = CliRunner().invoke(
            main, ["--data-dir", tmpdir, "--actor-role", "user", "moderate", "listings", "L1", "approve"]
        )
        assert result.exit_code == 1
        assert "unauthorized" in result.output


def test_bulk():
    with tempfile.TemporaryDirectory() as tmpdir:
        services = _seed(
            tmpdir,
            User(id="U5", first_name="A", last_name="B", email="a@example.com"),
            User(id="U6", first_name="C", last_name="D", email="c@example.com"),
        )
        result = CliRunner().invoke(
            main, ["--data-dir", tmpdir, "bulk", "users", "suspend", "U5", "U6", "U404"]
        )
        assert result.exit_code == 0, result.output
        assert "2 users suspended" in result.output
        assert asyncio.run(services.store.count(EntityFamily.user, {"status": "suspended"})) == 2


def test_config_show_and_load():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "site.yaml"
        with open(path, "w") as f:
            yaml.dump({"site_name": "Barter", "max_images_per_ad": 6}, f)

        runner = CliRunner()
        result = runner.invoke(main, ["--data-dir", tmpdir, "config", "load", str(path)])
        assert result.exit_code == 0, result.output
        assert "Barter" in result.output

        result = runner.invoke(main, ["--data-dir", tmpdir, "config", "show"])
        assert result.exit_code == 0
        assert "max_images_per_ad" in result.output

        result = runner.invoke(main, ["--data-dir", tmpdir, "--actor-role", "moderator", "config", "show"])
        assert result.exit_code == 1


def test_config_load_rejects_unknown_keys():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "site.yaml"
        path.write_text("theme: dark\n")
        result = CliRunner().invoke(main, ["--data-dir", tmpdir, "config", "load", str(path)])
        assert result.exit_code == 1
        assert "validation_error" in result.output


def test_audit_json():
    with tempfile.TemporaryDirectory() as tmpdir:
        _seed(tmpdir, Listing(id="L1", listing_type="job", title="Cook", user="U1"))
        runner = CliRunner()
        runner.invoke(main, ["--data-dir", tmpdir, "moderate", "listings", "L1", "approve"])

        result = runner.invoke(main, ["--data-dir", tmpdir, "audit", "--format", "json"])
        assert result.exit_code == 0, result.output
        events = json.loads(result.output)
        assert [e["action"] for e in events] == ["approve"]
        assert events[0]["entity_ids"] == ["L1"]
