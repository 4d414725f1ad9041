"""Tests for database layer (psycopg2 mocked, no real DB needed)."""

import os
from unittest.mock import MagicMock, patch

import pytest

from openwapi.infra.db import get_conn, txn


class TestGetConn:
    def test_explicit_dsn(self):
        with patch("openwapi.infra.db.psycopg2.connect", return_value=MagicMock()) as connect:
            get_conn("dbname=wa")
        connect.assert_called_once_with("dbname=wa")

    def test_falls_back_to_database_url(self):
        with patch.dict(os.environ, {"DATABASE_URL": "dbname=env"}, clear=True), \
             patch("openwapi.infra.db.psycopg2.connect", return_value=MagicMock()) as connect:
            get_conn()
        connect.assert_called_once_with("dbname=env")

    def test_raises_without_dsn(self):
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(RuntimeError, match="DATABASE_URL"):
                get_conn()


class TestTxn:
    def test_commits_on_success(self):
        conn = MagicMock()
        with patch("openwapi.infra.db.psycopg2.connect", return_value=conn):
            with txn("dbname=wa") as cur:
                cur.execute("SELECT 1")
        conn.commit.assert_called_once()
        conn.rollback.assert_not_called()
        conn.close.assert_called_once()

    def test_rolls_back_on_error(self):
        conn = MagicMock()
        with patch("openwapi.infra.db.psycopg2.connect", return_value=conn):
            with pytest.raises(ValueError):
                with txn("dbname=wa"):
                    raise ValueError("boom")
        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()
        conn.close.assert_called_once()
