import typing

from behave import when, use_step_matcher

from soroban_sdk.address import Address

# Use regular expressions
use_step_matcher("re")


@when("I parse the address")
def when_parse_address(context: typing.Any):
    try:
        context.output = Address.from_str(context.input)
    except Exception as e:
        context.output = e


@when("I convert the address to a string")
def when_address_to_string(context: typing.Any):
    context.output = str(context.output)


@when("I check the address kind")
def when_address_kind(context: typing.Any):
    context.output = "contract" if context.output.is_contract() else "account"
