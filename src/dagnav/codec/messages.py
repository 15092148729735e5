"""Protobuf message classes for the dag-pb envelope and the UnixFS Data message.

The classes are built at import time from a descriptor equivalent to::

    message PBLink {
      optional bytes Hash = 1;
      optional bytes Name = 2;
      optional uint64 Tsize = 3;
    }

    message PBNode {
      repeated PBLink Links = 2;
      optional bytes Data = 1;
    }

    message UnixTime {
      optional int64 Seconds = 1;
      optional fixed32 FractionalNanoseconds = 2;
    }

    message Data {
      optional int32 Type = 1;
      optional bytes Data = 2;
      optional uint64 filesize = 3;
      repeated uint64 blocksizes = 4;
      optional uint64 hashType = 5;
      optional uint64 fanout = 6;
      optional uint32 mode = 7;
      optional UnixTime mtime = 8;
    }

PBLink.Name is declared as bytes rather than string so names that are not
valid UTF-8 survive parsing. Data.Type is a plain integer so unknown types
reach the caller instead of landing in the unknown field set.
"""
from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

PACKAGE = 'dagnav.codec'

_Field = descriptor_pb2.FieldDescriptorProto

_OPTIONAL = _Field.LABEL_OPTIONAL
_REPEATED = _Field.LABEL_REPEATED

_MESSAGES = {
    'PBLink': [
        ('Hash', 1, _Field.TYPE_BYTES, _OPTIONAL, None),
        ('Name', 2, _Field.TYPE_BYTES, _OPTIONAL, None),
        ('Tsize', 3, _Field.TYPE_UINT64, _OPTIONAL, None),
    ],
    'PBNode': [
        ('Links', 2, _Field.TYPE_MESSAGE, _REPEATED, 'PBLink'),
        ('Data', 1, _Field.TYPE_BYTES, _OPTIONAL, None),
    ],
    'UnixTime': [
        ('Seconds', 1, _Field.TYPE_INT64, _OPTIONAL, None),
        ('FractionalNanoseconds', 2, _Field.TYPE_FIXED32, _OPTIONAL, None),
    ],
    'Data': [
        ('Type', 1, _Field.TYPE_INT32, _OPTIONAL, None),
        ('Data', 2, _Field.TYPE_BYTES, _OPTIONAL, None),
        ('filesize', 3, _Field.TYPE_UINT64, _OPTIONAL, None),
        ('blocksizes', 4, _Field.TYPE_UINT64, _REPEATED, None),
        ('hashType', 5, _Field.TYPE_UINT64, _OPTIONAL, None),
        ('fanout', 6, _Field.TYPE_UINT64, _OPTIONAL, None),
        ('mode', 7, _Field.TYPE_UINT32, _OPTIONAL, None),
        ('mtime', 8, _Field.TYPE_MESSAGE, _OPTIONAL, 'UnixTime'),
    ],
}


def _build_file() -> descriptor_pb2.FileDescriptorProto:
    file_proto = descriptor_pb2.FileDescriptorProto(name='dagnav/codec/messages.proto', package=PACKAGE,
                                                    syntax='proto2')
    for message_name, fields in _MESSAGES.items():
        message = file_proto.message_type.add(name=message_name)
        for name, number, field_type, label, type_name in fields:
            field = message.field.add(name=name, number=number, type=field_type, label=label)
            if type_name is not None:
                field.type_name = f'.{PACKAGE}.{type_name}'
    return file_proto


_pool = descriptor_pool.DescriptorPool()
_pool.AddSerializedFile(_build_file().SerializeToString())


def _message_class(name: str):
    return message_factory.GetMessageClass(_pool.FindMessageTypeByName(f'{PACKAGE}.{name}'))


PBLinkMessage = _message_class('PBLink')
PBNodeMessage = _message_class('PBNode')
UnixTimeMessage = _message_class('UnixTime')
UnixfsDataMessage = _message_class('Data')
