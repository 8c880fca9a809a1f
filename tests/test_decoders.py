# tests/test_decoders.py
import json
import pickle
import struct
from datetime import date
from fractions import Fraction

import pytest

from iod.decoders import polymorphic_json
from iod.decoders.native import NativeDecoder
from iod.decoders.polymorphic_json import PolymorphicJsonDecoder
from iod.decoders.tagged_yaml import TaggedYamlDecoder
from iod.errors import (
    MalformedTypeIdentifier, PayloadError, PolicyUnavailable, TypeRejected, UnresolvableType,
)
from iod.gate.policy import GateConfig, load_config
from iod.safe.safe_class import SafeClass

CALLS = []


def _record():
    CALLS.append("called")
    return "pwned"


class Gadget:
    def __reduce__(self):
        return (_record, ())


@pytest.fixture(autouse=True)
def _reset_calls():
    CALLS.clear()
    yield
    CALLS.clear()


# ---- native (pickle) ----

def test_native_admits_safe_class(config):
    obj = NativeDecoder().decode(pickle.dumps(SafeClass("a", 1)), config)
    assert obj == SafeClass("a", 1)


def test_native_admits_exact_type(config):
    assert NativeDecoder().decode(pickle.dumps(date(2020, 1, 2)), config) == date(2020, 1, 2)


def test_native_plain_data_needs_no_globals(config):
    data = {"a": [1, 2.5, "x"], "b": (None, True)}
    assert NativeDecoder().decode(pickle.dumps(data), config) == data


def test_native_rejects_gadget_before_it_runs(config):
    raw = pickle.dumps(Gadget())
    with pytest.raises(TypeRejected) as exc:
        NativeDecoder().decode(raw, config)
    assert exc.value.candidate.endswith("._record")
    assert CALLS == []


def test_native_unchecked_runs_gadget():
    assert NativeDecoder().decode_unchecked(pickle.dumps(Gadget())) == "pwned"
    assert CALLS == ["called"]


def test_native_rejects_lookalike_namespace(config):
    # protocol 0 GLOBAL opcode naming iod.safex.Evil
    with pytest.raises(TypeRejected) as exc:
        NativeDecoder().decode(b"ciod.safex\nEvil\n.", config)
    assert exc.value.candidate == "iod.safex.Evil"


def test_native_rejects_reexported_name(config):
    # admitted by name, but resolves to dataclasses.dataclass
    with pytest.raises(TypeRejected) as exc:
        NativeDecoder().decode(b"ciod.safe.safe_class\ndataclass\n.", config)
    assert exc.value.candidate == "dataclasses.dataclass"


def test_native_without_policy_fails_closed():
    with pytest.raises(PolicyUnavailable):
        NativeDecoder().decode(pickle.dumps(SafeClass("a", 1)), None)


def test_native_garbage_is_payload_error(config):
    with pytest.raises(PayloadError):
        NativeDecoder().decode(b"not a pickle", config)
    with pytest.raises(PayloadError):
        NativeDecoder().decode_unchecked(b"")


# ---- polymorphic JSON ----

def _j(doc):
    return json.dumps(doc).encode()


def test_json_admits_safe_class_and_ignores_unknown(config):
    raw = _j({"@type": "iod.safe.safe_class.SafeClass", "name": "a", "value": 1, "extra": True})
    assert PolymorphicJsonDecoder().decode(raw, config) == SafeClass("a", 1)


def test_json_binds_nested_objects(config):
    raw = _j({"items": [{"@type": "iod.safe.safe_class.SafeClass", "name": "x"}, 3]})
    out = PolymorphicJsonDecoder().decode(raw, config)
    assert out == {"items": [SafeClass("x", 0), 3]}


def test_json_untyped_object_stays_dict(config):
    assert PolymorphicJsonDecoder().decode(b'{"name": "a"}', config) == {"name": "a"}


def test_json_rejects_unlisted_type(config):
    raw = _j({"@type": "fractions.Fraction", "numerator": 1, "denominator": 3})
    with pytest.raises(TypeRejected) as exc:
        PolymorphicJsonDecoder().decode(raw, config)
    assert exc.value.candidate == "fractions.Fraction"


def test_json_unchecked_builds_any_type():
    raw = _j({"@type": "fractions.Fraction", "numerator": 1, "denominator": 3})
    assert PolymorphicJsonDecoder().decode_unchecked(raw) == Fraction(1, 3)


def test_json_rejects_lookalike_namespace(config):
    with pytest.raises(TypeRejected):
        PolymorphicJsonDecoder().decode(_j({"@type": "iod.safex.Evil"}), config)


def test_json_gates_outer_object_first(config, monkeypatch):
    built = []
    real = polymorphic_json.instantiate
    monkeypatch.setattr(polymorphic_json, "instantiate", lambda cls, v, **kw: built.append(cls) or real(cls, v, **kw))
    raw = _j({"@type": "os.system", "inner": {"@type": "iod.safe.safe_class.SafeClass", "name": "x"}})
    with pytest.raises(TypeRejected):
        PolymorphicJsonDecoder().decode(raw, config)
    assert built == []


def test_json_rejected_inner_aborts_outer(config, monkeypatch):
    built = []
    real = polymorphic_json.instantiate
    monkeypatch.setattr(polymorphic_json, "instantiate", lambda cls, v, **kw: built.append(cls) or real(cls, v, **kw))
    raw = _j({"@type": "iod.safe.safe_class.SafeClass", "name": {"@type": "subprocess.Popen", "args": "id"}})
    with pytest.raises(TypeRejected) as exc:
        PolymorphicJsonDecoder().decode(raw, config)
    assert exc.value.candidate == "subprocess.Popen"
    assert built == []


@pytest.mark.parametrize("bad", ["", 5, None, "a..b", ["iod.safe.safe_class.SafeClass"]])
def test_json_malformed_discriminator(config, bad):
    with pytest.raises(MalformedTypeIdentifier):
        PolymorphicJsonDecoder().decode(_j({"@type": bad}), config)


def test_json_admitted_but_missing_type(config):
    with pytest.raises(UnresolvableType):
        PolymorphicJsonDecoder().decode(_j({"@type": "iod.safe.nope.Missing"}), config)
    with pytest.raises(UnresolvableType):
        PolymorphicJsonDecoder().decode(_j({"@type": "iod.safe.safe_class.dataclass"}), config)


def test_json_trailing_tokens_and_bad_bytes(config):
    with pytest.raises(PayloadError):
        PolymorphicJsonDecoder().decode(b'{"a": 1} {"b": 2}', config)
    with pytest.raises(PayloadError):
        PolymorphicJsonDecoder().decode(b"\xff\xfe{", config)


def test_json_custom_type_property(policy):
    cfg = GateConfig(policy=policy, type_property="kind")
    raw = _j({"kind": "iod.safe.safe_class.SafeClass", "name": "k", "@type": "ignored"})
    assert PolymorphicJsonDecoder().decode(raw, cfg) == SafeClass("k", 0)


# ---- tagged YAML ----

def test_yaml_untagged_root_binds_to_root_type(config):
    obj = TaggedYamlDecoder().decode(b"name: a\nvalue: 1\n", config)
    assert obj == SafeClass("a", 1)
    assert str(obj) == "SafeClass{name='a', value=1}"


def test_yaml_explicit_tag(config):
    raw = b"!!python/object:iod.safe.safe_class.SafeClass {name: b, value: 2, junk: 0}"
    assert TaggedYamlDecoder().decode(raw, config) == SafeClass("b", 2)


def test_yaml_apply_and_new(config):
    assert TaggedYamlDecoder().decode(b"!!python/object/apply:datetime.date [2020, 1, 2]", config) == date(2020, 1, 2)
    raw = b"!!python/object/new:iod.safe.safe_class.SafeClass {state: {name: n, value: 3}}"
    assert TaggedYamlDecoder().decode(raw, config) == SafeClass("n", 3)


def test_yaml_rejects_apply_gadget(config):
    with pytest.raises(TypeRejected) as exc:
        TaggedYamlDecoder().decode(b"!!python/object/apply:os.system ['echo pwned']", config)
    assert exc.value.candidate == "os.system"


def test_yaml_rejects_nested_gadget(config):
    raw = b"name: !!python/object/apply:os.system ['echo pwned']\nvalue: 1\n"
    with pytest.raises(TypeRejected):
        TaggedYamlDecoder().decode(raw, config)


def test_yaml_unchecked_builds_any_type(config):
    raw = b"!!python/object/apply:fractions.Fraction [1, 3]"
    assert TaggedYamlDecoder().decode_unchecked(raw) == Fraction(1, 3)
    with pytest.raises(TypeRejected):
        TaggedYamlDecoder().decode(raw, config)


def test_yaml_lookalike_root_type_rejected(policy):
    cfg = GateConfig(policy=policy, root_type="iod.safex.Evil")
    with pytest.raises(TypeRejected):
        TaggedYamlDecoder().decode(b"name: a\n", cfg)


def test_yaml_without_root_type_keeps_mapping(policy):
    cfg = GateConfig(policy=policy, root_type=None)
    assert TaggedYamlDecoder().decode(b"name: a\n", cfg) == {"name": "a"}


def test_yaml_scalars_and_sequences_pass_through(config):
    assert TaggedYamlDecoder().decode(b"hello", config) == "hello"
    assert TaggedYamlDecoder().decode(b"[1, 2]", config) == [1, 2]


def test_yaml_other_python_tags_unsupported(config):
    with pytest.raises(PayloadError):
        TaggedYamlDecoder().decode(b"!!python/name:os.system", config)


def test_yaml_invalid_document(config):
    with pytest.raises(PayloadError):
        TaggedYamlDecoder().decode(b"a: [1, 2", config)


# ---- attribute-path and construction failures ----

def _str_op(s):
    # BINUNICODE: opcode, 4-byte little-endian length, utf-8 bytes
    b = s.encode("utf-8")
    return b"X" + struct.pack("<I", len(b)) + b


def test_native_rejects_builtins_reached_through_allowed_class(tmp_path):
    marker = tmp_path / "ran"
    code = f"open({str(marker)!r}, 'w').close()"
    raw = (
        b"\x80\x04"
        + _str_op("iod.safe.safe_class") + _str_op("SafeClass.__init__.__builtins__.get") + b"\x93"
        + _str_op("eval") + b"\x85R"
        + _str_op(code) + b"\x85R."
    )
    with pytest.raises(TypeRejected) as exc:
        NativeDecoder().decode(raw, load_config())
    assert exc.value.candidate == "iod.safe.safe_class.SafeClass.__init__.__builtins__.get"
    assert not marker.exists()


def test_native_rejects_object_without_canonical_name(config):
    # iod.safe.safe_class is a module, not a class or function
    with pytest.raises(TypeRejected) as exc:
        NativeDecoder().decode(b"ciod.safe\nsafe_class\n.", config)
    assert exc.value.reason == "resolved object has no canonical name"


def test_json_constructor_value_error_is_payload_error(config):
    raw = _j({"@type": "datetime.date", "year": 2020, "month": 13, "day": 1})
    with pytest.raises(PayloadError) as exc:
        PolymorphicJsonDecoder().decode(raw, config)
    assert exc.value.candidate == "datetime.date"


def test_yaml_construction_failures_are_payload_errors(config):
    bad = [
        b"!!python/object/apply:datetime.date [2020, 13, 1]",
        b"!!python/object/new:datetime.date {args: [2020, 1, 1], state: {x: 1}}",
        b"!!python/object/apply:datetime.date {args: [2020, 1, 1], kwds: [1, 2]}",
    ]
    for raw in bad:
        with pytest.raises(PayloadError):
            TaggedYamlDecoder().decode(raw, config)
