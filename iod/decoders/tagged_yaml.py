# iod/decoders/tagged_yaml.py
from __future__ import annotations
from typing import Any, Dict, Optional
import yaml
from yaml.nodes import MappingNode, SequenceNode

from .binding import admit_class, instantiate
from ..errors import DecodeError, PayloadError
from ..gate.policy import AllowListPolicy, GateConfig

PY_TAG = "tag:yaml.org,2002:python/"
MAP_TAG = "tag:yaml.org,2002:map"


class GatedLoader(yaml.SafeLoader):
    """
    SafeLoader plus the python/object family of tags, each one gated on its
    tag suffix before the class is imported or any field node is constructed.
    python/name and python/module stay unsupported.

    An untagged root mapping is bound to root_type (when set), which goes
    through the gate like any explicit tag.
    """

    def __init__(self, stream, policy: Optional[AllowListPolicy], root_type: Optional[str] = None):
        super().__init__(stream)
        self.policy = policy
        self.root_type = root_type

    def construct_document(self, node):
        if self.root_type and isinstance(node, MappingNode) and node.tag == MAP_TAG:
            node.tag = f"{PY_TAG}object:{self.root_type}"
        return super().construct_document(node)

    def _call_args(self, node):
        """[args...] or {args: [...], kwds: {...}, state: {...}}"""
        if isinstance(node, SequenceNode):
            return self.construct_sequence(node, deep=True), {}, {}
        if isinstance(node, MappingNode):
            value = self.construct_mapping(node, deep=True)
            try:
                return list(value.get("args", [])), dict(value.get("kwds", {})), dict(value.get("state", {}))
            except (TypeError, ValueError) as e:
                raise PayloadError(f"bad args/kwds/state: {e}") from e
        scalar = self.construct_scalar(node)
        return ([scalar] if scalar != "" else []), {}, {}


def _build(suffix: str, make, state: Dict[str, Any]) -> Any:
    """Create the instance and apply state; any failure becomes a PayloadError."""
    try:
        obj = make()
        for k, v in state.items():
            setattr(obj, k, v)
        return obj
    except DecodeError:
        raise
    except Exception as e:
        raise PayloadError(f"cannot create instance: {e}", suffix) from e


def construct_object(loader: GatedLoader, suffix: str, node) -> Any:
    cls = admit_class(suffix, loader.policy)
    if not isinstance(node, MappingNode):
        raise PayloadError("python/object expects a mapping", suffix)
    return instantiate(cls, loader.construct_mapping(node, deep=True), ignore_unknown=True)


def construct_object_new(loader: GatedLoader, suffix: str, node) -> Any:
    cls = admit_class(suffix, loader.policy)
    args, kwds, state = loader._call_args(node)
    return _build(suffix, lambda: cls.__new__(cls, *args, **kwds), state)


def construct_object_apply(loader: GatedLoader, suffix: str, node) -> Any:
    cls = admit_class(suffix, loader.policy)
    args, kwds, state = loader._call_args(node)
    return _build(suffix, lambda: cls(*args, **kwds), state)


GatedLoader.add_multi_constructor(f"{PY_TAG}object:", construct_object)
GatedLoader.add_multi_constructor(f"{PY_TAG}object/new:", construct_object_new)
GatedLoader.add_multi_constructor(f"{PY_TAG}object/apply:", construct_object_apply)


class TaggedYamlDecoder:
    name = "yaml"
    media_type = "application/x-yaml"

    def decode(self, raw: bytes, config: Optional[GateConfig]) -> Any:
        policy = config.policy if config else None
        root_type = config.root_type if config else None
        loader = GatedLoader(raw, policy, root_type)
        try:
            return loader.get_single_data()
        except DecodeError:
            raise
        except yaml.YAMLError as e:
            raise PayloadError(f"invalid YAML: {e}") from e
        finally:
            loader.dispose()

    def decode_unchecked(self, raw: bytes) -> Any:
        # Vulnerable! the full Loader builds any python/object tag it is given
        try:
            return yaml.load(raw, Loader=yaml.Loader)
        except yaml.YAMLError as e:
            raise PayloadError(f"invalid YAML: {e}") from e
