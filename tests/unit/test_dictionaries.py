"""Tests for dictionary definitions and DDL rendering."""

import datetime
from dataclasses import dataclass

import pytest

from chsources.lib.dictionaries import (
    DictionaryLayout,
    DictionaryRenderer,
    DictionarySourceSpec,
    DictionarySpec,
    format_literal,
)
from chsources.lib.errors import (
    ConfigurationError,
    InvalidRangeError,
    MissingDictionarySourceError,
    MissingEnvironmentVariableError,
    MissingPrimaryKeyError,
    UnsupportedProviderError,
)
from chsources.lib.metadata import key_field
from chsources.lib.models import ColumnSpec, ConnectionSettings, ResolvableValue
from chsources.lib.resolver import ConnectionResolver
from chsources.lib.types import UInt64


@dataclass
class CountryLookup:
    Id: UInt64 = key_field(default=0)
    Name: str = ""


@dataclass
class RegionCity:
    Country: str = key_field(order=0, default="")
    City: str = key_field(order=1, default="")
    Population: UInt64 = 0


def _country_spec(**overrides):
    values = dict(
        name="country_lookup",
        key_columns=("Id",),
        columns=(ColumnSpec("Id", UInt64), ColumnSpec("Name", str)),
        source=DictionarySourceSpec(table="countries"),
    )
    values.update(overrides)
    return DictionarySpec(**values)


PG_CONNECTION = ConnectionSettings(
    host="pg.internal",
    port="5432",
    database="reference",
    user="reader",
    password="secret",
)


class TestDictionaryLayout:
    @pytest.mark.parametrize(
        "name,expected",
        [
            ("flat", DictionaryLayout.FLAT),
            ("HASHED", DictionaryLayout.HASHED),
            ("complex_key_hashed", DictionaryLayout.COMPLEX_KEY_HASHED),
            ("ComplexKeyHashedArray", DictionaryLayout.COMPLEX_KEY_HASHED_ARRAY),
            ("range-hashed", DictionaryLayout.RANGE_HASHED),
        ],
    )
    def test_parse(self, name, expected):
        assert DictionaryLayout.parse(name) is expected

    def test_parse_unknown(self):
        with pytest.raises(ConfigurationError) as exc_info:
            DictionaryLayout.parse("sparse")
        assert exc_info.value.suggestion
        assert "flat" in exc_info.value.suggestion


class TestFormatLiteral:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("Unknown", "'Unknown'"),
            ("it's", "'it\\'s'"),
            (True, "1"),
            (False, "0"),
            (42, "42"),
            (1.5, "1.5"),
            (None, "NULL"),
            (datetime.date(2024, 1, 31), "'2024-01-31'"),
            (datetime.datetime(2024, 1, 31, 8, 5, 9), "'2024-01-31 08:05:09'"),
        ],
    )
    def test_literals(self, value, expected):
        assert format_literal(value) == expected


class TestDictionarySpec:
    def test_defaults(self):
        spec = DictionarySpec(name="d")
        assert spec.layout is DictionaryLayout.HASHED
        assert (spec.lifetime_min, spec.lifetime_max) == (0, 300)
        assert not spec.is_manual_reload

    def test_layout_string_parsed(self):
        assert DictionarySpec(name="d", layout="flat").layout is DictionaryLayout.FLAT

    def test_empty_name(self):
        with pytest.raises(ConfigurationError):
            DictionarySpec(name="")

    def test_negative_lifetime(self):
        with pytest.raises(InvalidRangeError):
            DictionarySpec(name="d", lifetime_min=-1)

    def test_min_above_max(self):
        with pytest.raises(InvalidRangeError) as exc_info:
            DictionarySpec(name="d", lifetime_min=600, lifetime_max=60)
        assert exc_info.value.field == "lifetime_min"

    def test_manual_reload(self):
        assert DictionarySpec(name="d", lifetime_min=0, lifetime_max=0).is_manual_reload

    def test_from_shape(self):
        spec = DictionarySpec.from_shape(CountryLookup, layout="flat")
        assert spec.name == "country_lookup"
        assert spec.key_columns == ("Id",)
        assert [c.type_name for c in spec.columns] == ["UInt64", "String"]

    def test_from_shape_composite_key(self):
        spec = DictionarySpec.from_shape(RegionCity, layout="complex_key_hashed")
        assert spec.key_columns == ("Country", "City")

    def test_source_is_external(self):
        assert not DictionarySourceSpec().is_external
        assert DictionarySourceSpec(provider="postgresql").is_external


class TestRenderCreate:
    def test_full_statement(self, dictionary_renderer):
        spec = _country_spec(
            layout="flat",
            layout_options={"max_array_size": 100000},
            lifetime_min=60,
            lifetime_max=600,
            defaults={"Name": "Unknown"},
        )
        assert dictionary_renderer.render_create(spec) == "\n".join(
            [
                'CREATE DICTIONARY IF NOT EXISTS "country_lookup"',
                "(",
                '    "Id" UInt64,',
                "    \"Name\" String DEFAULT 'Unknown'",
                ")",
                'PRIMARY KEY "Id"',
                "SOURCE(CLICKHOUSE(TABLE 'countries'))",
                "LAYOUT(FLAT(MAX_ARRAY_SIZE 100000))",
                "LIFETIME(MIN 60 MAX 600)",
            ]
        )

    def test_null_default(self, dictionary_renderer):
        spec = _country_spec(
            columns=(ColumnSpec("Id", UInt64), ColumnSpec("Name", str, "Nullable(String)")),
            defaults={"Name": None},
        )
        rendered = dictionary_renderer.render_create(spec)
        assert '    "Name" Nullable(String) DEFAULT NULL' in rendered
        assert "None" not in rendered

    def test_without_if_not_exists(self, dictionary_renderer):
        rendered = dictionary_renderer.render_create(_country_spec(), if_not_exists=False)
        assert rendered.startswith('CREATE DICTIONARY "country_lookup"\n')

    def test_composite_key(self, dictionary_renderer):
        spec = DictionarySpec.from_shape(
            RegionCity,
            layout="complex_key_hashed",
            source=DictionarySourceSpec(query="SELECT * FROM cities"),
        )
        rendered = dictionary_renderer.render_create(spec)
        assert 'PRIMARY KEY ("Country", "City")' in rendered
        assert "SOURCE(CLICKHOUSE(QUERY 'SELECT * FROM cities'))" in rendered
        assert "LAYOUT(COMPLEX_KEY_HASHED())" in rendered

    def test_table_defaults_to_name(self, dictionary_renderer):
        spec = _country_spec(source=DictionarySourceSpec())
        assert "SOURCE(CLICKHOUSE(TABLE 'country_lookup'))" in dictionary_renderer.render_create(spec)

    def test_identifier_quotes_doubled(self, dictionary_renderer):
        spec = _country_spec(name='odd"name')
        assert 'CREATE DICTIONARY IF NOT EXISTS "odd""name"' in dictionary_renderer.render_create(spec)

    def test_missing_keys(self, dictionary_renderer):
        with pytest.raises(MissingPrimaryKeyError) as exc_info:
            dictionary_renderer.render_create(_country_spec(key_columns=()))
        assert exc_info.value.dictionary == "country_lookup"

    def test_missing_source(self, dictionary_renderer):
        with pytest.raises(MissingDictionarySourceError):
            dictionary_renderer.render_create(_country_spec(source=None))

    def test_unsupported_source(self, dictionary_renderer):
        spec = _country_spec(source=DictionarySourceSpec(provider="redis"))
        with pytest.raises(UnsupportedProviderError):
            dictionary_renderer.render_create(spec)


class TestLayoutAndLifetime:
    def test_layout_options(self, dictionary_renderer):
        spec = _country_spec(
            layout="cache",
            layout_options={"size_in_cells": 1000, "allow_read_expired_keys": True, "path": "/tmp/x"},
        )
        assert dictionary_renderer.render_layout(spec) == (
            "LAYOUT(CACHE(SIZE_IN_CELLS 1000 ALLOW_READ_EXPIRED_KEYS 1 PATH '/tmp/x'))"
        )

    def test_layout_without_options(self, dictionary_renderer):
        assert dictionary_renderer.render_layout(_country_spec()) == "LAYOUT(HASHED())"

    @pytest.mark.parametrize(
        "bounds,expected",
        [
            ((0, 0), "LIFETIME(0)"),
            ((0, 300), "LIFETIME(300)"),
            ((120, 120), "LIFETIME(120)"),
            ((60, 600), "LIFETIME(MIN 60 MAX 600)"),
        ],
    )
    def test_lifetime(self, dictionary_renderer, bounds, expected):
        spec = _country_spec(lifetime_min=bounds[0], lifetime_max=bounds[1])
        assert dictionary_renderer.render_lifetime(spec) == expected


class TestPostgreSQLSource:
    def test_literal_connection(self, dictionary_renderer):
        spec = _country_spec(
            source=DictionarySourceSpec(provider="postgresql", table="countries", connection=PG_CONNECTION),
        )
        rendered = dictionary_renderer.render_create(spec)
        assert "\n".join(
            [
                "SOURCE(POSTGRESQL(",
                "    host 'pg.internal'",
                "    port 5432",
                "    user 'reader'",
                "    password 'secret'",
                "    db 'reference'",
                "    table 'countries'",
                "    schema 'public'",
                "))",
            ]
        ) in rendered

    def test_default_port(self, dictionary_renderer):
        connection = ConnectionSettings(host="pg.internal", database="reference", user="r", password="p")
        spec = _country_spec(
            source=DictionarySourceSpec(provider="postgresql", table="countries", connection=connection),
        )
        assert "    port 5432\n" in dictionary_renderer.render_create(spec)

    def test_profile_and_profile_schema(self, dictionary_renderer):
        spec = _country_spec(
            source=DictionarySourceSpec(
                provider="postgresql",
                table="countries",
                connection=ConnectionSettings.from_profile("analytics"),
            ),
        )
        rendered = dictionary_renderer.render_create(spec)
        assert "    host 'pg.internal'\n    port 5432\n" in rendered
        assert "    user 'reporter'\n" in rendered
        assert "    schema 'reporting'\n" in rendered

    def test_explicit_schema_wins_over_profile(self, dictionary_renderer):
        spec = _country_spec(
            source=DictionarySourceSpec(
                provider="postgresql",
                table="countries",
                schema="ref",
                connection=ConnectionSettings.from_profile("analytics"),
            ),
        )
        assert "    schema 'ref'\n" in dictionary_renderer.render_create(spec)

    def test_where_and_invalidate_query(self, dictionary_renderer):
        spec = _country_spec(
            source=DictionarySourceSpec(
                provider="postgresql",
                table="countries",
                connection=PG_CONNECTION,
                where="active = 'y'",
                invalidate_query="SELECT max(updated_at) FROM countries",
            ),
        )
        rendered = dictionary_renderer.render_create(spec)
        assert "    where 'active = \\'y\\''\n" in rendered
        assert "    invalidate_query 'SELECT max(updated_at) FROM countries'\n" in rendered

    def test_requires_table(self, dictionary_renderer):
        spec = _country_spec(source=DictionarySourceSpec(provider="postgresql", connection=PG_CONNECTION))
        with pytest.raises(ConfigurationError) as exc_info:
            dictionary_renderer.render_create(spec)
        assert exc_info.value.field == "table"

    def test_password_from_env_read_at_render(self):
        environ = {"PG_PASSWORD": "first"}
        renderer = DictionaryRenderer(ConnectionResolver(environ=environ))
        connection = ConnectionSettings(
            host_port="pg:5432",
            database="reference",
            user="reader",
            password=ResolvableValue.from_env("PG_PASSWORD"),
        )
        spec = _country_spec(
            source=DictionarySourceSpec(provider="postgresql", table="countries", connection=connection),
        )
        assert "password 'first'" in renderer.render_create(spec)
        environ["PG_PASSWORD"] = "second"
        assert "password 'second'" in renderer.render_create(spec)


class TestMySQLSource:
    def test_render(self, dictionary_renderer):
        connection = ConnectionSettings(host="mysql.internal", database="shop", user="app", password="pw")
        spec = _country_spec(
            source=DictionarySourceSpec(
                provider="mysql",
                table="countries",
                connection=connection,
                fail_on_connection_loss=True,
            ),
        )
        rendered = dictionary_renderer.render_create(spec)
        assert "SOURCE(MYSQL(\n    host 'mysql.internal'\n    port 3306\n" in rendered
        assert "    fail_on_connection_loss 'true'\n))" in rendered
        assert "schema" not in rendered

    def test_fail_on_connection_loss_omitted_by_default(self, dictionary_renderer):
        connection = ConnectionSettings(host_port="m:3306", database="shop", user="app", password="pw")
        spec = _country_spec(
            source=DictionarySourceSpec(provider="mysql", table="countries", connection=connection),
        )
        assert "fail_on_connection_loss" not in dictionary_renderer.render_create(spec)

    def test_env_profile(self, profile_store):
        renderer = DictionaryRenderer(
            ConnectionResolver(profile_store, environ={"SHOP_USER": "app", "SHOP_PASSWORD": "pw"})
        )
        spec = _country_spec(
            source=DictionarySourceSpec(
                provider="mysql",
                table="countries",
                connection=ConnectionSettings.from_profile("from-env"),
            ),
        )
        rendered = renderer.render_create(spec)
        assert "    host 'mysql.internal'\n    port 3306\n    user 'app'\n    password 'pw'\n" in rendered


class TestHTTPSource:
    def test_minimal(self, dictionary_renderer):
        spec = _country_spec(source=DictionarySourceSpec(provider="http", url="https://ref.example.com/countries"))
        rendered = dictionary_renderer.render_create(spec)
        assert "SOURCE(HTTP(\n    url 'https://ref.example.com/countries'\n    format 'JSONEachRow'\n))" in rendered

    def test_credentials_and_headers(self):
        renderer = DictionaryRenderer(ConnectionResolver(environ={"API_TOKEN": "tok"}))
        spec = _country_spec(
            source=DictionarySourceSpec(
                provider="http",
                url="https://ref.example.com/countries",
                format="CSVWithNames",
                user="svc",
                password="pw",
                headers={"Accept": "text/csv"},
                headers_env={"Authorization": "API_TOKEN"},
            ),
        )
        rendered = renderer.render_create(spec)
        assert "    format 'CSVWithNames'\n" in rendered
        assert "    credentials(user 'svc' password 'pw')\n" in rendered
        assert "    headers('Accept' 'text/csv' 'Authorization' 'tok')\n" in rendered

    def test_credentials_need_both_parts(self, dictionary_renderer):
        spec = _country_spec(source=DictionarySourceSpec(provider="http", url="https://x", user="svc"))
        assert "credentials" not in dictionary_renderer.render_create(spec)

    def test_header_env_required(self):
        renderer = DictionaryRenderer(ConnectionResolver(environ={}))
        spec = _country_spec(
            source=DictionarySourceSpec(provider="http", url="https://x", headers_env={"Authorization": "API_TOKEN"}),
        )
        with pytest.raises(MissingEnvironmentVariableError) as exc_info:
            renderer.render_create(spec)
        assert exc_info.value.variable == "API_TOKEN"


class TestStatementsAndQueries:
    def test_drop(self, dictionary_renderer):
        spec = _country_spec()
        assert dictionary_renderer.render_drop(spec) == 'DROP DICTIONARY IF EXISTS "country_lookup"'
        assert dictionary_renderer.render_drop(spec, if_exists=False) == 'DROP DICTIONARY "country_lookup"'

    def test_reload(self, dictionary_renderer):
        assert dictionary_renderer.render_reload(_country_spec()) == 'SYSTEM RELOAD DICTIONARY "country_lookup"'

    def test_dict_get(self, dictionary_renderer):
        spec = _country_spec()
        assert dictionary_renderer.render_dict_get(spec, "Name", "country_id") == (
            "dictGet('country_lookup', 'Name', country_id)"
        )

    def test_dict_get_or_default(self, dictionary_renderer):
        spec = _country_spec()
        assert dictionary_renderer.render_dict_get_or_default(spec, "Name", "toUInt64(1)", "n/a") == (
            "dictGetOrDefault('country_lookup', 'Name', toUInt64(1), 'n/a')"
        )

    def test_dict_has(self, dictionary_renderer):
        spec = _country_spec()
        assert dictionary_renderer.render_dict_has(spec, "tuple(a, b)") == "dictHas('country_lookup', tuple(a, b))"

    def test_status_query(self, dictionary_renderer):
        query = dictionary_renderer.render_status_query(_country_spec())
        assert query.startswith("SELECT\n    status,")
        assert "FROM system.dictionaries\nWHERE name = 'country_lookup'\nLIMIT 1" in query
