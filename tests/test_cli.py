"""Tests for the site-crawl and site-mirror entry points."""

import json

import pytest

from site_mirror import cli
from site_mirror.crawl import CrawlReport, PageRecord, write_report
from site_mirror.settings import DOWNLOAD_LOG, REPORT_JSON, REPORT_MD

from .conftest import FakeResponse, FakeSession


@pytest.fixture
def site(monkeypatch):
    session = FakeSession()
    session.add_page(
        "http://site.test/",
        '<title>Home</title><a href="/about"></a><img src="/logo.png">',
    )
    session.add_page("http://site.test/about", "<title>About</title>")
    session.routes["http://site.test/logo.png"] = FakeResponse(
        "http://site.test/logo.png", b"PNG", content_type="image/png"
    )
    monkeypatch.setattr("site_mirror.crawl.build_session", lambda: session)
    monkeypatch.setattr("site_mirror.mirror.build_session", lambda **kw: session)
    return session


class TestCrawlMain:
    def test_success(self, site, tmp_path, capsys):
        out = tmp_path / "out"
        code = cli.crawl_main(["http://site.test/", "10", "--output-dir", str(out)])

        assert code == 0
        assert "Crawl complete. Pages: 2, Images: 1, Assets: 1" in capsys.readouterr().out
        data = json.loads((out / REPORT_JSON).read_text(encoding="utf-8"))
        assert [p["url"] for p in data["pages"]] == [
            "http://site.test/",
            "http://site.test/about",
        ]
        assert (out / REPORT_MD).exists()
        assert site.headers["User-Agent"].startswith("Mozilla/5.0")

    def test_max_pages_positional(self, site, tmp_path):
        code = cli.crawl_main(["http://site.test/", "1", "--output-dir", str(tmp_path)])
        assert code == 0
        assert site.calls == ["http://site.test/"]

    def test_invalid_url(self, site, tmp_path, capsys):
        code = cli.crawl_main(["ftp://site.test/", "--output-dir", str(tmp_path)])
        assert code == 1
        assert "Crawl failed" in capsys.readouterr().err
        assert not (tmp_path / REPORT_JSON).exists()

    def test_unwritable_output(self, site, tmp_path, capsys):
        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        code = cli.crawl_main(["http://site.test/", "--output-dir", str(blocker / "out")])
        assert code == 1
        assert "Crawl failed" in capsys.readouterr().err

    def test_config_file_defaults(self, site, tmp_path):
        cfg = tmp_path / "site.toml"
        cfg.write_text(
            '[crawl]\nstart_url = "http://site.test/"\nmax_pages = 1\n',
            encoding="utf-8",
        )
        code = cli.crawl_main(
            ["--config", str(cfg), "--output-dir", str(tmp_path / "out")]
        )
        assert code == 0
        assert site.calls == ["http://site.test/"]

    def test_positional_overrides_config(self, site, tmp_path):
        cfg = tmp_path / "site.yaml"
        cfg.write_text("crawl:\n  max_pages: 1\n", encoding="utf-8")
        code = cli.crawl_main(
            [
                "http://site.test/",
                "5",
                "--config",
                str(cfg),
                "--output-dir",
                str(tmp_path / "out"),
            ]
        )
        assert code == 0
        assert len(site.calls) == 2


class TestMirrorMain:
    def test_success(self, site, tmp_path, capsys):
        report = CrawlReport(
            start_url="http://site.test/",
            origin="http://site.test",
            pages=[PageRecord(url="http://site.test/", status=200)],
            assets=["http://site.test/logo.png"],
            action_targets=["http://site.test/about", "http://site.test/missing"],
        )
        write_report(report, tmp_path)

        code = cli.mirror_main(["3", "--output-dir", str(tmp_path)])

        assert code == 0
        out = capsys.readouterr().out
        assert "Mirror download complete. Requested: 4, Downloaded: 3, Failed: 1" in out
        root = tmp_path / "mirror" / "site.test"
        assert (root / "index.html").exists()
        assert (root / "about.html").exists()
        assert (root / "logo.png").read_bytes() == b"PNG"
        log = json.loads((tmp_path / DOWNLOAD_LOG).read_text(encoding="utf-8"))
        assert log["totalRequested"] == 4
        assert log["errors"][0]["url"] == "http://site.test/missing"

    def test_custom_mirror_dir_and_report(self, site, tmp_path):
        report = CrawlReport(
            start_url="http://site.test/",
            origin="http://site.test",
            pages=[PageRecord(url="http://site.test/", status=200)],
        )
        report_path = write_report(report, tmp_path / "reports")

        code = cli.mirror_main(
            [
                "--report",
                str(report_path),
                "--mirror-dir",
                str(tmp_path / "files"),
                "--output-dir",
                str(tmp_path / "logs"),
            ]
        )

        assert code == 0
        assert (tmp_path / "files" / "site.test" / "index.html").exists()
        assert (tmp_path / "logs" / DOWNLOAD_LOG).exists()

    def test_missing_report(self, site, tmp_path, capsys):
        code = cli.mirror_main(["--output-dir", str(tmp_path)])
        assert code == 1
        assert "Mirror failed" in capsys.readouterr().err
        assert not (tmp_path / DOWNLOAD_LOG).exists()


class TestSettingsFromArgs:
    def test_minimums(self):
        args = cli.build_mirror_parser().parse_args(["0"])
        settings = cli.settings_from_args(args)
        assert settings.concurrency == 1
        assert settings.mirror_path == settings.output_path / "mirror"

    def test_crawl_defaults(self):
        args = cli.build_crawl_parser().parse_args([])
        settings = cli.settings_from_args(args)
        assert settings.start_url == "http://johnmayo.com"
        assert settings.max_pages == 2000

    def test_mirror_parser_with_crawl_only_config(self, tmp_path):
        cfg = tmp_path / "site.toml"
        cfg.write_text('[crawl]\nstart_url = "http://site.test/"\n', encoding="utf-8")
        args = cli.parse_args(cli.build_mirror_parser(), ["--config", str(cfg)])
        settings = cli.settings_from_args(args)
        assert settings.concurrency == 10
        assert settings.max_pages == 2000
        assert settings.mirror_dir is None


class TestSharedConfig:
    def test_both_commands_read_one_file(self, site, tmp_path, capsys):
        cfg = tmp_path / "site.toml"
        cfg.write_text(
            "[general]\n"
            f'output_dir = "{(tmp_path / "out").as_posix()}"\n'
            "[crawl]\n"
            'start_url = "http://site.test/"\n'
            "max_pages = 1\n"
            "[mirror]\n"
            "concurrency = 4\n"
            f'mirror_dir = "{(tmp_path / "files").as_posix()}"\n',
            encoding="utf-8",
        )

        assert cli.crawl_main(["--config", str(cfg)]) == 0
        assert site.calls == ["http://site.test/"]
        assert (tmp_path / "out" / REPORT_JSON).exists()

        assert cli.mirror_main(["--config", str(cfg)]) == 0
        assert (tmp_path / "files" / "site.test" / "index.html").exists()
        assert (tmp_path / "out" / DOWNLOAD_LOG).exists()
        assert "Requested: 3, Downloaded: 3, Failed: 0" in capsys.readouterr().out
