from decimal import Decimal

from bson.codec_options import CodecOptions, TypeCodec, TypeRegistry
from bson.decimal128 import Decimal128


class DecimalCodec(TypeCodec):
    """Store ``Decimal`` amounts as BSON decimal128 and read them back as ``Decimal``."""

    python_type = Decimal
    bson_type = Decimal128

    def transform_python(self, value: Decimal) -> Decimal128:
        return Decimal128(value)

    def transform_bson(self, value: Decimal128) -> Decimal:
        return value.to_decimal()


def codec_options() -> CodecOptions:
    return CodecOptions(type_registry=TypeRegistry([DecimalCodec()]), tz_aware=True)
