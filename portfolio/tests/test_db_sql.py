import unittest

from portfolio.db import (
    ContactRecord,
    ProjectImage,
    ProjectRecord,
    SqlDbClient,
    UserRecord,
)
from portfolio.errors import NotFound


def _project(project_id, created_at, **overrides):
    fields = dict(
        id=project_id,
        title=f"Project {project_id}",
        description="d" * 60,
        tags=["python"],
        category="web",
        featured=False,
        created_at=created_at,
        updated_at=created_at,
    )
    fields.update(overrides)
    return ProjectRecord(**fields)


class SqlDbClientTests(unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the SQL record store.
    """

    def setUp(self):
        self.db = SqlDbClient("sqlite+pysqlite:///:memory:")

    def tearDown(self):
        self.db.close()

    def test_project_roundtrip_with_image(self):
        image = ProjectImage(
            optimized_data=b"\xff\xd8optimized",
            thumbnail_data=b"\xff\xd8thumb",
            content_type="image/jpeg",
            original_size=1234,
            optimized_size=11,
            thumbnail_size=7,
        )
        record = _project("a1", 100.0, image=image, github="github.com/x/y")
        self.db.insert_project(record)

        loaded = self.db.get_project("a1")
        self.assertEqual(loaded, record)
        self.assertIsNone(self.db.get_project("missing"))

    def test_replace_and_delete(self):
        self.db.insert_project(_project("a1", 100.0, image=None))
        updated = _project("a1", 100.0, title="Renamed", updated_at=200.0)
        self.db.replace_project(updated)
        self.assertEqual(self.db.get_project("a1").title, "Renamed")
        self.assertEqual(self.db.get_project("a1").updated_at, 200.0)

        with self.assertRaises(NotFound):
            self.db.replace_project(_project("nope", 1.0))

        deleted = self.db.delete_project("a1")
        self.assertEqual(deleted.title, "Renamed")
        with self.assertRaises(NotFound):
            self.db.delete_project("a1")

    def test_list_ordering_filters_and_count(self):
        self.db.insert_project(_project("b", 100.0))
        self.db.insert_project(_project("a", 100.0))
        self.db.insert_project(_project("c", 300.0, featured=True, category="ai"))
        self.db.insert_project(
            _project("d", 200.0, tags=["Rust", "embedded"], category="embedded")
        )

        records, total = self.db.list_projects(offset=0, limit=10)
        self.assertEqual(total, 4)
        self.assertEqual([r.id for r in records], ["c", "d", "a", "b"])

        records, total = self.db.list_projects(offset=1, limit=2)
        self.assertEqual(total, 4)
        self.assertEqual([r.id for r in records], ["d", "a"])

        records, total = self.db.list_projects(featured=True)
        self.assertEqual(([r.id for r in records], total), (["c"], 1))

        records, total = self.db.list_projects(category="embedded")
        self.assertEqual([r.id for r in records], ["d"])

        records, total = self.db.list_projects(search="rust")
        self.assertEqual(([r.id for r in records], total), (["d"], 1))

        records, total = self.db.list_projects(search="100%")
        self.assertEqual((records, total), ([], 0))

    def test_contacts(self):
        self.db.insert_contact(
            ContactRecord(id="c1", email="a@b.co", message="Hello there", created_at=1.0)
        )
        self.db.insert_contact(
            ContactRecord(id="c2", email="z@b.co", message="Hire me please", created_at=2.0)
        )
        self.assertEqual([c.id for c in self.db.list_contacts()], ["c2", "c1"])
        self.assertEqual([c.id for c in self.db.list_contacts(search="HIRE")], ["c2"])

        updated = self.db.update_contact_status("c1", "reviewed")
        self.assertEqual(updated.status, "reviewed")
        self.assertEqual(
            [c.id for c in self.db.list_contacts(status="reviewed")], ["c1"]
        )

        self.db.delete_contact("c1")
        self.assertIsNone(self.db.get_contact("c1"))
        with self.assertRaises(NotFound):
            self.db.delete_contact("c1")
        with self.assertRaises(NotFound):
            self.db.update_contact_status("c1", "archived")

    def test_users(self):
        user = UserRecord(id="u1", username="admin", password_hash="hash", is_admin=True)
        self.db.insert_user(user)
        self.assertEqual(self.db.get_user_by_username("admin").id, "u1")
        self.assertTrue(self.db.get_user("u1").is_admin)
        self.assertIsNone(self.db.get_user_by_username("nobody"))

    def test_ping(self):
        self.assertTrue(self.db.ping())


if __name__ == "__main__":
    unittest.main()
