'''Validated request bodies, one per mutating endpoint.'''
from typing import Any, Type, TypeVar

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator

from errors import ValidationError
from idgen import is_valid_secret_format
from models import CONTENT_MAX_LENGTH, TITLE_MAX_LENGTH

SchemaT = TypeVar('SchemaT', bound=BaseModel)


class RequestBody(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra='ignore')


class SecretField(RequestBody):
    secret : str

    @field_validator('secret')
    @classmethod
    def _secret_format(cls, value:str) -> str:
        if not is_valid_secret_format(value):
            raise ValueError('Invalid secret format')
        return value


class CreatePostRequest(RequestBody):
    title : str = Field(min_length=1, max_length=TITLE_MAX_LENGTH)
    content : str = Field(min_length=1, max_length=CONTENT_MAX_LENGTH)


class UpdatePostRequest(SecretField, CreatePostRequest):
    pass


class DeletePostRequest(SecretField):
    pass


def _describe(exc:pydantic.ValidationError) -> str:
    first = exc.errors()[0]
    field = '.'.join(str(part) for part in first.get('loc', ())) or 'body'
    message = first.get('msg', 'invalid value')
    # pydantic prefixes errors raised from validators.
    message = message.removeprefix('Value error, ')
    return f'{field}: {message}'


def parse_request(schema:Type[SchemaT], payload:Any) -> SchemaT:
    if not isinstance(payload, dict):
        raise ValidationError('Request body must be a JSON object')
    try:
        return schema.model_validate(payload)
    except pydantic.ValidationError as exc:
        raise ValidationError(_describe(exc)) from exc
