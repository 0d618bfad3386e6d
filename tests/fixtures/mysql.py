"""
Fixtures for MySQL integration tests.

The tests need a running server and are skipped unless
DBMODEL_TEST_MYSQL_HOST is set (see tests/config.py for the other
variables).
"""
import time

import dbmodel as db
import pytest

from tests import config


@pytest.fixture
def mysql_conn():
    """Connection to the configured MySQL server with a fresh `people` table."""
    if config.mysql is None:
        pytest.skip('DBMODEL_TEST_MYSQL_HOST is not set')

    table = f'people_{int(time.time() * 1000)}'
    conn = db.connect(config.mysql)
    db.run(conn, f"""
    CREATE TABLE `{table}` (
        id INT AUTO_INCREMENT PRIMARY KEY,
        name VARCHAR(100) NOT NULL,
        age INT,
        active TINYINT(1) NOT NULL DEFAULT 1,
        balance DECIMAL(10, 2),
        location POINT,
        created_at DATETIME
    )
    """)
    conn.test_table = table

    yield conn

    db.run(conn, f'DROP TABLE IF EXISTS `{table}`')
    conn.close()
