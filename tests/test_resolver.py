"""
Tests for the auto-flip translation direction resolver.
"""

import pytest

from src.translator.language import resolve_destination
from src.translator.models import ContactSession, Step


def _session(source="es", target="en"):
    return ContactSession(
        contact_id="whatsapp:+15550000000",
        step=Step.READY,
        source_lang=source,
        target_lang=target,
    )


class TestResolveDestination:
    def test_forward_message_goes_to_target(self):
        assert resolve_destination("es", _session()) == "en"

    def test_reply_goes_to_source(self):
        assert resolve_destination("en", _session()) == "es"

    def test_locale_detection_is_normalized(self):
        assert resolve_destination("en-US", _session()) == "es"
        assert resolve_destination("spanish", _session()) == "en"

    def test_third_language_falls_back_to_source(self):
        assert resolve_destination("fr", _session()) == "es"
        assert resolve_destination("ja", _session()) == "es"

    def test_unknown_defaults_to_target(self):
        assert resolve_destination(None, _session()) == "en"
        assert resolve_destination("", _session()) == "en"
        assert resolve_destination("unknown", _session()) == "en"

    def test_unknown_policy_source(self):
        assert resolve_destination(None, _session(), unknown_policy="source") == "es"
        assert resolve_destination("", _session(), unknown_policy="source") == "es"

    def test_policy_does_not_affect_known_languages(self):
        assert resolve_destination("es", _session(), unknown_policy="source") == "en"
        assert resolve_destination("en", _session(), unknown_policy="source") == "es"

    @pytest.mark.parametrize(
        "detected",
        [None, "", "es", "en", "fr", "de", "pt-BR", "xx", "gibberish", "EN", "es-MX"],
    )
    @pytest.mark.parametrize("policy", ["target", "source"])
    def test_result_is_always_one_of_the_pair(self, detected, policy):
        session = _session()
        assert resolve_destination(detected, session, unknown_policy=policy) in {"es", "en"}

    def test_requires_distinct_languages(self):
        with pytest.raises(ValueError):
            resolve_destination("es", _session(source="es", target="es"))
        with pytest.raises(ValueError):
            resolve_destination("es", _session(target=None))
