"""Wire codecs: JSON and XML encode/decode plus choice resolution."""

from .choice import check_exclusive, populated_member, populated_members, resolve_key
from .json_codec import decode_json, encode_json, from_dict, to_dict
from .xml_codec import decode_xml, encode_xml, from_element, to_element

__all__ = [
    "check_exclusive",
    "decode_json",
    "decode_xml",
    "encode_json",
    "encode_xml",
    "from_dict",
    "from_element",
    "populated_member",
    "populated_members",
    "resolve_key",
    "to_dict",
    "to_element",
]
