import typing

from behave import when, use_step_matcher

from soroban_sdk import scval
from soroban_sdk.bcs import Deserializer, Serializer, encoder
from soroban_sdk.wire_value import WireValue

# Use regular expressions
use_step_matcher("re")


@when(r"I encode as (?P<input_type>[a-zA-Z0-9]+)")
def when_encode(context: typing.Any, input_type: str):
    try:
        value = scval.encode(context.input, input_type)
        context.output = encoder(value, Serializer.struct)
    except Exception as e:
        context.output = e


@when(r"I encode without a type")
def when_encode_untyped(context: typing.Any):
    try:
        context.output = encoder(scval.encode(context.input), Serializer.struct)
    except Exception as e:
        context.output = e


@when(r"I decode the wire value")
def when_decode(context: typing.Any):
    des = Deserializer(context.input)
    try:
        context.output = scval.decode(des.struct(WireValue))
    except Exception as e:
        context.output = e
