import logging
from unittest import mock

import pytest
import requests

from docrag.config import load_config
from docrag.errors import ConfigError, OllamaUnavailableError
from docrag.llm import OllamaHealthCheck, make_health_check
from docrag.llm.health import InstalledModel, canonical_names, is_installed, parse_tags
from docrag.web import build_services

TAGS = {
    "models": [
        {"name": "llama3:latest", "model": "llama3:latest", "details": {"parameter_size": "8.0B", "quantization_level": "Q4_0"}},
        {"name": "library/nomic-embed-text:v1.5", "model": "library/nomic-embed-text:v1.5"},
    ]
}


def json_response(data, status=200):
    resp = mock.Mock()
    resp.status_code = status
    resp.json.return_value = data
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status}", response=resp)
    else:
        resp.raise_for_status.return_value = None
    return resp


def make_check(session, **kwargs):
    kwargs.setdefault("embedding_model", "nomic-embed-text")
    kwargs.setdefault("chat_model", "llama3")
    return OllamaHealthCheck("http://ollama:11434/", session=session, **kwargs)


class TestModelNames:
    def test_canonical_variants(self):
        assert canonical_names("Library/Nomic-Embed-Text:v1.5") == {
            "library/nomic-embed-text:v1.5",
            "library/nomic-embed-text",
            "nomic-embed-text:v1.5",
            "nomic-embed-text",
        }
        assert canonical_names("llama3") == {"llama3"}
        assert canonical_names("  ") == set()
        assert canonical_names(None) == set()

    @pytest.mark.parametrize(
        "configured, expected",
        [
            ("llama3", True),
            ("LLAMA3:latest", True),
            ("llama3:8b", True),
            ("nomic-embed-text", True),
            ("mistral", False),
            ("", False),
            (None, False),
        ],
    )
    def test_is_installed(self, configured, expected):
        canonical = canonical_names("llama3") | canonical_names("library/nomic-embed-text:v1.5")
        assert is_installed(configured, canonical) is expected

    def test_tagless_config_matches_latest(self):
        assert is_installed("phi3", {"phi3:latest"})

    def test_parse_tags(self):
        models = parse_tags(TAGS)
        assert models[0] == InstalledModel("llama3:latest", "llama3:latest", "8.0B", "Q4_0")
        assert models[0].pretty() == "llama3:latest (8.0B, Q4_0)"
        assert parse_tags({"models": "nope"}) == []
        assert parse_tags(["llama3"]) == []

    def test_pretty_shows_differing_model_tag(self):
        assert InstalledModel("llama3", "llama3:8b").pretty() == "llama3 (llama3:8b)"


class TestOllamaHealthCheck:
    def test_all_models_present(self, caplog):
        caplog.set_level(logging.INFO, logger="docrag.llm.health")
        session = mock.Mock()
        session.get.side_effect = [json_response(TAGS), json_response({"version": "0.3.12"})]

        report = make_check(session).run()

        assert report.reachable
        assert report.embedding_ok is True
        assert report.chat_ok is True
        assert report.version == "0.3.12"
        assert session.get.call_args_list[0].args[0] == "http://ollama:11434/api/tags"
        assert session.get.call_args_list[1].args[0] == "http://ollama:11434/api/version"
        assert "Configured embedding model: nomic-embed-text [OK]" in caplog.text
        assert "Ollama version: 0.3.12" in caplog.text

    def test_get_rejected_falls_back_to_post(self):
        session = mock.Mock()
        session.get.side_effect = [json_response({}, status=405), json_response({}, status=404)]
        session.post.return_value = json_response(TAGS)

        report = make_check(session).run()

        assert report.chat_ok
        session.post.assert_called_once()
        assert session.post.call_args.args[0] == "http://ollama:11434/api/tags"
        assert session.post.call_args.kwargs["json"] == {}
        assert report.version is None

    def test_unreachable_raises_when_required(self):
        session = mock.Mock()
        session.get.side_effect = requests.ConnectionError("connection refused")

        with pytest.raises(OllamaUnavailableError, match="not reachable at http://ollama:11434"):
            make_check(session).run()

    def test_unreachable_only_warns_when_optional(self, caplog):
        session = mock.Mock()
        session.get.side_effect = requests.ConnectionError("connection refused")

        report = make_check(session, required=False).run()

        assert report.reachable is False
        assert "continuing because ollama.health.required is off" in caplog.text

    def test_missing_models_raise_with_pull_hint(self, caplog):
        caplog.set_level(logging.INFO, logger="docrag.llm.health")
        session = mock.Mock()
        session.get.side_effect = [json_response({"models": [{"name": "llama3:latest"}]}), json_response({})]

        with pytest.raises(ConfigError, match="ollama pull nomic-embed-text") as excinfo:
            make_check(session).run()

        assert "[embedding=nomic-embed-text]" in str(excinfo.value)
        assert "chat=" not in str(excinfo.value)
        assert "Configured embedding model: nomic-embed-text [MISSING]" in caplog.text

    def test_blank_chat_model_is_missing(self):
        session = mock.Mock()
        session.get.side_effect = [json_response(TAGS), json_response({})]

        with pytest.raises(ConfigError, match=r"\[chat=-\]"):
            make_check(session, chat_model="").run()

    def test_missing_models_only_warn_when_not_required(self, caplog):
        session = mock.Mock()
        session.get.side_effect = [json_response({"models": []}), json_response({"version": "0.1.0"})]

        report = make_check(session, require_models=False).run()

        assert report.embedding_ok is False
        assert report.chat_ok is False
        assert "continuing because ollama.health.require_models is off" in caplog.text

    def test_embedding_from_other_backend_is_not_checked(self):
        session = mock.Mock()
        session.get.side_effect = [json_response({"models": [{"name": "llama3"}]}), json_response({})]

        report = make_check(session, embedding_model=None).run()

        assert report.embedding_ok is None
        assert report.chat_ok is True

    def test_installed_list_is_capped_in_the_log(self, caplog):
        caplog.set_level(logging.INFO, logger="docrag.llm.health")
        session = mock.Mock()
        many = {"models": [{"name": f"m{i}"} for i in range(5)] + [{"name": "llama3"}, {"name": "nomic-embed-text"}]}
        session.get.side_effect = [json_response(many), json_response({})]

        report = make_check(session, max_log_models=2).run()

        assert len(report.installed) == 7
        assert "Installed models (7 total, showing up to 2): ['llama3', 'm0']" in caplog.text


class TestMakeHealthCheck:
    def test_reads_ollama_health_settings(self):
        cfg = load_config(
            {"ollama": {"embedding_model": "e", "chat_model": "c", "health": {"required": False, "max_log_models": 5}}},
            environ={},
        )
        check = make_health_check(cfg)
        assert check.base_url == "http://localhost:11434"
        assert (check.embedding_model, check.chat_model) == ("e", "c")
        assert check.required is False
        assert check.require_models is True
        assert check.max_log_models == 5

    def test_disabled(self):
        assert make_health_check(load_config({"ollama": {"health": {"enabled": False}}}, environ={})) is None
        assert make_health_check(load_config(environ={"OLLAMA_HEALTH_ENABLED": "false"})) is None

    def test_sentence_transformers_backend_skips_embedding_model(self):
        cfg = load_config({"embedding": {"backend": "sentence_transformers"}}, environ={})
        assert make_health_check(cfg).embedding_model is None


class TestServicesStartup:
    def test_health_check_runs_before_load(self, config, embedder):
        health = mock.Mock()
        services = build_services(config, embedder=embedder, health=health)
        services.admin = mock.Mock()

        services.start()
        services.stop()

        health.run.assert_called_once()
        services.admin.auto_load.assert_called_once()

    def test_failed_check_stops_startup(self, config, embedder):
        session = mock.Mock()
        session.get.return_value = json_response({"models": [{"name": "llama3"}]})
        health = OllamaHealthCheck("http://ollama:11434", "test-embed", "test-chat", session=session)
        services = build_services(config, embedder=embedder, health=health)
        services.admin = mock.Mock()

        with pytest.raises(ConfigError, match="ollama pull test-embed"):
            services.start()

        services.admin.auto_load.assert_not_called()

    def test_disabled_in_config(self, config, embedder):
        assert build_services(config, embedder=embedder).health is None
