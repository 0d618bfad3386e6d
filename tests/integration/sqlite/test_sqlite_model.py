import datetime
import json

import dbmodel as db
import pytest
from dbmodel import ValidationError


class TestFind:

    def test_find_by_pk(self, user_model):
        user = user_model.find(1)
        assert isinstance(user, user_model)
        assert user.name == 'Ann'
        assert user.id == 1
        assert user.age == 30
        assert user.active is True
        assert user.created_at == datetime.datetime(2024, 1, 2, 3, 4, 5)
        assert user.deleted_at is None

    def test_find_by_field(self, user_model):
        assert user_model.find('name', 'Bo').id == 2

    def test_find_by_filter(self, user_model):
        assert user_model.find({'name': 'Cy', 'age': 40}).id == 3
        assert user_model.find({'name': 'Cy', 'age': 41}) is None

    def test_find_missing(self, user_model):
        assert user_model.find(99) is None

    def test_find_skips_inactive(self, user_model, sqlite_conn):
        db.run(sqlite_conn, 'UPDATE users SET active = 0 WHERE id = 2')
        assert user_model.find(2) is None

    def test_find_without_active_column(self, tag_model):
        assert tag_model.find(1).label == 'red'

    def test_query(self, user_model):
        users = user_model.query('SELECT * FROM users WHERE age > :age ORDER BY age', {'age': 26})
        assert [u.name for u in users] == ['Ann', 'Cy']
        assert all(u.active is True for u in users)

    def test_query_row(self, user_model):
        assert user_model.query_row('SELECT * FROM users ORDER BY age').name == 'Bo'
        assert user_model.query_row('SELECT * FROM users WHERE id = 99') is None

    def test_run_with_model(self, user_model, sqlite_conn):
        users = db.run(sqlite_conn, 'SELECT id, active FROM users ORDER BY id', model=user_model)
        assert [u.active for u in users] == [True, True, True]


class TestInsert:

    def test_insert(self, user_model):
        user = user_model.insert({'name': 'Di', 'age': '22'})
        assert user.id == 4
        assert user.age == 22
        assert user.active is True

    def test_insert_failure(self, user_model):
        assert user_model.insert({'nickname': 'D'}) is False


class TestUpdate:

    def test_update_field(self, user_model, sqlite_conn):
        user = user_model.find(1)
        assert user.update('name', 'Annie') == 1
        assert user.name == 'Annie'
        assert db.row(sqlite_conn, 'SELECT name FROM users WHERE id = 1') == {'name': 'Annie'}

    def test_update_mapping_refreshes(self, user_model):
        user = user_model.find(2)
        assert user.update({'age': 26, 'score': 3}) == 1
        assert user.age == 26
        assert user.score == 3.0
        assert user.name == 'Bo'

    def test_update_nothing(self, user_model):
        assert user_model.find(1).update({}) is False

    def test_update_failure(self, user_model):
        user = user_model.find(1)
        assert user.update('name', None) is False
        assert user.name == 'Ann'


class TestDelete:

    def test_soft_delete(self, user_model, sqlite_conn):
        user = user_model.find(1)
        assert user.delete() == 1
        assert user.active is False
        assert isinstance(user.deleted_at, datetime.datetime)
        assert user_model.find(1) is None
        assert db.row(sqlite_conn, 'SELECT active FROM users WHERE id = 1') == {'active': 0}

    def test_hard_delete(self, tag_model, sqlite_conn):
        tag = tag_model.find(1)
        assert tag.delete() == 1
        assert tag_model.find(1) is None
        assert db.run(sqlite_conn, 'SELECT id FROM tags') == [{'id': 2}]


class TestMap:

    def test_map_active_rows(self, user_model, sqlite_conn):
        db.run(sqlite_conn, 'UPDATE users SET active = 0 WHERE id = 3')
        assert sorted(user_model.map()) == [1, 2]
        assert sorted(user_model.map('name')) == ['Ann', 'Bo']

    def test_map_with_filter(self, user_model):
        assert user_model.map('name', {'age': 25}) == ['Bo']
        assert sorted(user_model.map('age', 'age > 26')) == [30, 40]

    def test_map_coerces(self, user_model):
        assert sorted(user_model.map('active')) == [True, True, True]

    def test_map_no_rows(self, user_model):
        assert user_model.map('name', {'age': 99}) == []

    def test_map_unknown_field(self, user_model):
        with pytest.raises(ValidationError):
            user_model.map('nickname')


class TestSerialization:

    def test_to_dict_and_json(self, user_model):
        user = user_model.find(2)
        data = user.to_dict(['id', 'name', 'active'])
        assert data == {'id': 2, 'name': 'Bo', 'active': True}
        decoded = json.loads(user.json())
        assert decoded['name'] == 'Bo'
        assert decoded['created_at'] == '2024-02-03 04:05:06'


class TestRegistration:

    def test_registration_details(self, user_model, sqlite_registry):
        registration = sqlite_registry.lookup(user_model)
        assert registration.table == 'users'
        assert registration.pk == 'id'
        assert user_model.db() is sqlite_registry.cn

    def test_schema_change_not_seen(self, user_model, sqlite_conn):
        db.run(sqlite_conn, 'ALTER TABLE users ADD COLUMN nickname TEXT')
        assert user_model.get_field('nickname') is None

    def test_missing_table(self, sqlite_registry):
        class Ghost(db.Model):
            pass

        with pytest.raises(ValidationError, match='not found in database'):
            sqlite_registry.register(Ghost, 'ghosts')


if __name__ == '__main__':
    __import__('pytest').main([__file__])
