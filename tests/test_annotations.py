from __future__ import annotations

import functools
import unittest

import pytest

from cosmodi import Container, ValidationError


class Config:
    def __init__(self, url: str) -> None:
        self.url = url


class DBService:
    def __init__(self, prefix: str, config: Config) -> None:
        self.prefix = prefix
        self.config = config


class Money:
    def __new__(cls, config: Config) -> Money:
        obj = super().__new__(cls)
        obj.config = config
        return obj


class Broken:
    def __init__(self, cfg: Missing) -> None:  # noqa: F821
        self.cfg = cfg


def make_config() -> Config:
    return Config("sqlite://test.db")


def make_db(prefix: str, config: Config) -> DBService:
    return DBService(prefix, config)


def describe_db(label: str, db: DBService) -> str:
    return label + db.prefix + db.config.url


class TestDeferredAnnotations(unittest.TestCase):
    cont: Container

    def setUp(self):
        self.cont = Container()
        self.cont.add_singleton(make_config)

    def test_function_constructor_keys_are_types(self):
        def make_db_local(config: Config) -> DBService:
            return DBService("", config)

        assert self.cont.add(make_db_local) is DBService
        assert self.cont.resolve(DBService).config is self.cont.resolve(Config)

    def test_partial_constructor_registers_under_the_class(self):
        produced = self.cont.add(functools.partial(make_db, "x:"))

        assert produced is DBService
        db = self.cont.resolve(DBService)
        assert db.prefix == "x:"
        assert db.config is self.cont.resolve(Config)

    def test_invoke_partial_resolves_class_keys(self):
        self.cont.add(functools.partial(make_db, "x:"))

        result = self.cont.invoke(functools.partial(describe_db, "db="))

        assert result == "db=x:sqlite://test.db"

    def test_class_constructed_through_new(self):
        assert self.cont.add(Money) is Money

        money = self.cont.resolve(Money)

        assert isinstance(money, Money)
        assert money.config is self.cont.resolve(Config)

    def test_class_with_unevaluable_annotation_names_it(self):
        with pytest.raises(ValidationError, match="cannot evaluate annotation 'Missing'"):
            self.cont.add(Broken)

    def test_bind_with_deferred_field_annotations(self):
        class Handler:
            config: Config

        h = self.cont.bind(Handler())

        assert h.config is self.cont.resolve(Config)
