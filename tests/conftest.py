import json
import threading
from types import SimpleNamespace

import pytest

from listing_review.models import PolicySection, Rule, Tier


class FakeAugmenter:
    """Returns a canned payload, or raises / blocks on demand."""

    def __init__(self, payload=None, error=None, block=None, model="fake-model"):
        self.payload = payload
        self.error = error
        self.block = block
        self.model = model
        self.calls = []
        self.timeouts = []

    def augment(self, title, description, timeout=None):
        self.calls.append((title, description))
        self.timeouts.append(timeout)
        if self.block is not None:
            self.block.wait(5)
        if self.error is not None:
            raise self.error
        return self.payload


class FakeMessages:
    def __init__(self, reply, failing_models=()):
        self.reply = reply
        self.failing_models = set(failing_models)
        self.requests = []

    def create(self, **kwargs):
        self.requests.append(kwargs)
        if kwargs.get("model") in self.failing_models:
            raise ConnectionError(f"{kwargs['model']} unavailable")
        return SimpleNamespace(content=[SimpleNamespace(type="text", text=self.reply)])


def fake_client(reply: str, failing_models=()):
    return SimpleNamespace(messages=FakeMessages(reply, failing_models))


class ListStore:
    def __init__(self, rules=(), sections=(), error=None):
        self.rules = list(rules)
        self.sections = list(sections)
        self.error = error

    def fetch_rules(self):
        if self.error is not None:
            raise self.error
        return self.rules

    def fetch_policy_sections(self):
        if self.error is not None:
            raise self.error
        return self.sections


@pytest.fixture
def rules():
    return [
        Rule(term="replica", risk_level=Tier.HIGH, reason="Replicas are counterfeit", category="intellectual_property"),
        Rule(term="nike", risk_level=Tier.HIGH, reason="Trademarked brand name", category="intellectual_property"),
        Rule(term="wholesale", risk_level=Tier.MEDIUM, reason="Wholesale reselling", category="handmade_reselling"),
        Rule(term="guaranteed", risk_level=Tier.WARNING, reason="Absolute guarantees", category="community_conduct"),
    ]


@pytest.fixture
def sections():
    return [
        PolicySection(
            title="Counterfeit Goods",
            summary="Counterfeit designer handbags",
            category="intellectual_property",
            risk_level=Tier.CRITICAL,
        ),
        PolicySection(
            title="Livestock Regulations",
            summary="Cattle herding permits required",
            category="prohibited_items",
            risk_level=Tier.HIGH,
        ),
    ]


@pytest.fixture
def release():
    event = threading.Event()
    yield event
    event.set()


@pytest.fixture
def write_json(tmp_path):
    def _write(name, data):
        path = tmp_path / name
        path.write_text(json.dumps(data), encoding="utf-8")
        return path
    return _write
