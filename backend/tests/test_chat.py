import json
import threading
from unittest import mock

import pytest
import requests

from docrag.core.models import Record
from docrag.errors import BadChatRequest, ChatError
from docrag.llm import ChatService, LLMConfig, OllamaChatClient, ThinkMode
from docrag.llm.chat import SYSTEM_PROMPT
from docrag.search import RetrievalService
from docrag.storage import InMemoryVectorIndex


def json_response(data, status=200):
    resp = mock.Mock()
    resp.status_code = status
    resp.json.return_value = data
    if status >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status}", response=resp)
    else:
        resp.raise_for_status.return_value = None
    return resp


def stream_response(frames, ok=True, text=""):
    resp = mock.Mock()
    resp.ok = ok
    resp.status_code = 200 if ok else 500
    resp.text = text
    resp.iter_lines.return_value = iter([json.dumps(f) if isinstance(f, dict) else f for f in frames])
    return resp


def client_with(session, model="llama3"):
    return OllamaChatClient(LLMConfig(api_base="http://ollama:11434/", model=model), session=session)


class TestThinkMode:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("fast", ThinkMode.FAST),
            ("SHORT", ThinkMode.FAST),
            (" long ", ThinkMode.LONG),
            ("deep", ThinkMode.XLONG),
            ("very_long", ThinkMode.XLONG),
            ("max", ThinkMode.MAX),
            ("whatever", ThinkMode.MEDIUM),
            (None, ThinkMode.MEDIUM),
        ],
    )
    def test_parse(self, raw, expected):
        assert ThinkMode.parse(raw) is expected

    def test_options(self):
        assert ThinkMode.FAST.options() == {"num_predict": 256, "temperature": 0.2, "top_p": 0.9}
        assert ThinkMode.MAX.options()["num_predict"] == 4096


class TestOllamaChatClient:
    def test_chat_reads_message_content(self):
        session = mock.Mock()
        session.post.return_value = json_response({"message": {"role": "assistant", "content": "Sushi."}})

        resp = client_with(session).chat([{"role": "user", "content": "hi"}], options={"num_predict": 8})

        assert resp.content == "Sushi."
        assert resp.endpoint == "chat"
        assert session.post.call_args.args[0] == "http://ollama:11434/api/chat"
        payload = session.post.call_args.kwargs["json"]
        assert payload["stream"] is False
        assert payload["options"] == {"num_predict": 8}

    def test_chat_without_content(self):
        session = mock.Mock()
        session.post.return_value = json_response({"done": True})
        assert client_with(session).chat([]).content == "[no content]"

    def test_http_error_falls_back_to_generate(self):
        session = mock.Mock()
        session.post.side_effect = [json_response({}, status=404), json_response({"response": "From generate"})]

        resp = client_with(session).chat([{"role": "user", "content": "q"}], system="SYS", prompt="q")

        assert resp.content == "From generate"
        assert resp.endpoint == "generate"
        second = session.post.call_args_list[1]
        assert second.args[0] == "http://ollama:11434/api/generate"
        assert second.kwargs["json"]["system"] == "SYS"
        assert second.kwargs["json"]["prompt"] == "q"

    def test_fallback_failure_raises(self):
        session = mock.Mock()
        session.post.side_effect = [json_response({}, status=404), json_response({}, status=500)]
        with pytest.raises(ChatError):
            client_with(session).chat([], prompt="q")

    def test_connection_error_raises(self):
        session = mock.Mock()
        session.post.side_effect = requests.ConnectionError("refused")
        with pytest.raises(ChatError):
            client_with(session).chat([])

    def test_stream_yields_deltas_until_done(self):
        session = mock.Mock()
        resp = stream_response([
            {"message": {"content": "Hel"}},
            "",
            {"message": {"content": "lo"}},
            {"message": {"content": ""}, "done": True},
            {"message": {"content": "ignored"}},
        ])
        session.post.return_value = resp

        deltas = list(client_with(session).stream_chat([{"role": "user", "content": "hi"}]))

        assert deltas == ["Hel", "lo"]
        payload = session.post.call_args.kwargs["json"]
        assert payload["stream"] is True
        assert payload["keep_alive"] == "5m"
        assert session.post.call_args.kwargs["stream"] is True
        resp.close.assert_called_once()

    def test_stream_accepts_generate_frames(self):
        session = mock.Mock()
        session.post.return_value = stream_response([{"response": "a"}, {"response": "b", "done": True}])
        assert list(client_with(session).stream_chat([])) == ["a", "b"]

    def test_stream_cancel_ends_quietly_and_closes(self):
        session = mock.Mock()
        resp = stream_response([{"message": {"content": str(i)}} for i in range(10)])
        session.post.return_value = resp
        cancel = threading.Event()

        out = []
        for delta in client_with(session).stream_chat([], cancel=cancel):
            out.append(delta)
            if len(out) == 2:
                cancel.set()

        assert out == ["0", "1"]
        resp.close.assert_called_once()

    def test_stream_error_status(self):
        session = mock.Mock()
        resp = stream_response([], ok=False, text='{"error":"model not found"}')
        session.post.return_value = resp

        with pytest.raises(ChatError, match="model not found"):
            list(client_with(session).stream_chat([]))
        resp.close.assert_called_once()

    def test_stream_malformed_frame(self):
        session = mock.Mock()
        session.post.return_value = stream_response(["{broken"])
        with pytest.raises(ChatError):
            list(client_with(session).stream_chat([]))


@pytest.fixture
def chat_service(embedder, index):
    index.upsert(Record("people_food.txt::0", "people_food.txt", 0, "Alice likes sushi.", embedder.embed_one("Alice likes sushi.")))
    session = mock.Mock()
    session.post.return_value = json_response({"message": {"content": "Alice likes sushi [people_food.txt#0]."}})
    service = ChatService(client_with(session), RetrievalService(embedder, index), default_top_k=3)
    return service, session


class TestChatService:
    def test_prepare_builds_system_prompt_with_context(self, chat_service):
        service, _ = chat_service
        messages = [
            {"role": "system", "content": "ignore me"},
            {"role": "user", "content": "hello"},
            {"role": "assistant", "content": "hi!"},
            {"role": "user", "content": "What does Alice like?"},
        ]

        p = service.prepare(messages)

        assert p.latest_user_text == "What does Alice like?"
        assert p.system.startswith(SYSTEM_PROMPT)
        assert "[people_food.txt#0]" in p.system
        assert [m["role"] for m in p.messages] == ["system", "user", "assistant", "user"]
        assert "ignore me" not in [m["content"] for m in p.messages]
        assert p.retrieved()[0]["source"] == "people_food.txt"

    @pytest.mark.parametrize(
        "messages, error",
        [
            ([], "Missing 'messages'"),
            ([{"role": "assistant", "content": "hi"}], "No user message"),
            ([{"role": "user", "content": "   "}], "No user message"),
        ],
    )
    def test_prepare_rejects_bad_requests(self, chat_service, messages, error):
        service, _ = chat_service
        with pytest.raises(BadChatRequest, match=error):
            service.prepare(messages)

    def test_missing_model(self, embedder, index):
        service = ChatService(client_with(mock.Mock(), model=""), RetrievalService(embedder, index))
        with pytest.raises(BadChatRequest, match="not configured"):
            service.prepare([{"role": "user", "content": "hi"}])

    def test_answer(self, chat_service):
        service, session = chat_service

        reply = service.answer([{"role": "user", "content": "What does Alice like?"}], think=ThinkMode.LONG)

        assert reply.answer == "Alice likes sushi [people_food.txt#0]."
        assert reply.model == "llama3"
        assert reply.think == "LONG"
        assert session.post.call_args.kwargs["json"]["options"]["num_predict"] == 1024

    def test_empty_index_context_is_sentinel(self, embedder):
        service = ChatService(client_with(mock.Mock()), RetrievalService(embedder, InMemoryVectorIndex()))
        p = service.prepare([{"role": "user", "content": "anything"}])
        assert p.context == "(no matches)"
        assert p.system.endswith("CONTEXT:\n(no matches)")
