import io
import math
import unittest
from unittest.mock import MagicMock

from PIL import Image
from redis import exceptions as redis_exceptions

from image_pipeline import transcoder
from portfolio.cache import InMemoryCache, NullCache, RedisCache
from portfolio.db import InMemoryDbClient
from portfolio.errors import (
    NotFound,
    ProcessingFailure,
    UnsupportedFormat,
    ValidationError,
)
from portfolio.services import ProjectService

DESCRIPTION = "A portfolio project description that is comfortably over fifty characters."


class FakeClock:
    def __init__(self, start=1_700_000_000.0, step=1.0):
        self.now = start
        self.step = step

    def __call__(self):
        value = self.now
        self.now += self.step
        return value


def png_bytes(size=(1600, 800)):
    buffer = io.BytesIO()
    Image.new("RGB", size, (10, 120, 200)).save(buffer, format="PNG")
    return buffer.getvalue()


def project_fields(**overrides):
    fields = {
        "title": "Demo",
        "description": DESCRIPTION,
        "tags": ["x"],
        "category": "web",
    }
    fields.update(overrides)
    return fields


class ProjectServiceTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.cache = InMemoryCache()
        self.clock = FakeClock()
        self.service = ProjectService(self.db, self.cache, clock=self.clock)

    def test_create_then_get_returns_normalized_fields(self):
        created = self.service.create(
            {
                "title": "  Demo  ",
                "description": f"  {DESCRIPTION}  ",
                "tags": "python, fastapi ,, ",
                "category": "AI",
                "featured": "true",
                "github": "https://github.com/example/demo",
                "live": "",
            }
        )
        fetched = self.service.get(created["id"])["data"]

        self.assertEqual(fetched["title"], "Demo")
        self.assertEqual(fetched["description"], DESCRIPTION)
        self.assertEqual(fetched["tags"], ["python", "fastapi"])
        self.assertEqual(fetched["category"], "ai")
        self.assertTrue(fetched["featured"])
        self.assertEqual(fetched["github"], "https://github.com/example/demo")
        self.assertIsNone(fetched["live"])
        self.assertIsNone(fetched["image"])
        self.assertEqual(fetched["createdAt"], fetched["updatedAt"])

    def test_create_defaults(self):
        created = self.service.create(
            {"title": "Demo", "description": DESCRIPTION, "tags": ["x"]}
        )
        self.assertEqual(created["category"], "web")
        self.assertFalse(created["featured"])

    def test_create_reports_every_invalid_field(self):
        with self.assertRaises(ValidationError) as ctx:
            self.service.create(
                {
                    "title": "x" * 101,
                    "description": "too short",
                    "tags": " , ",
                    "category": "spaceship",
                    "github": "not a url",
                }
            )
        fields = {error["field"] for error in ctx.exception.errors}
        self.assertEqual(
            fields, {"title", "description", "tags", "category", "github"}
        )
        self.assertEqual(self.db.projects, {})

    def test_create_with_image_builds_both_variants(self):
        raw = png_bytes((1600, 800))
        created = self.service.create(project_fields(), raw_image=raw)
        image = created["image"]
        self.assertEqual(image["url"], f"/api/projects/{created['id']}/image")
        self.assertEqual(
            image["thumbnailUrl"], f"/api/projects/{created['id']}/image/thumbnail"
        )
        self.assertEqual(image["originalSize"], len(raw))
        self.assertEqual(image["contentType"], "image/jpeg")

        full = self.service.get_image(created["id"], "full")
        thumb = self.service.get_image(created["id"], "thumbnail")
        self.assertEqual(len(full.data), image["optimizedSize"])
        self.assertIn("max-age=31536000", full.cache_control)
        with Image.open(io.BytesIO(full.data)) as img:
            self.assertEqual(img.size, (1200, 600))
        with Image.open(io.BytesIO(thumb.data)) as img:
            self.assertEqual(img.size, (300, 150))

        # Raw original bytes are not retained.
        stored = self.db.projects[created["id"]].image
        self.assertNotEqual(stored.optimized_data, raw)

    def test_transcode_failure_persists_nothing(self):
        failing = MagicMock(side_effect=ProcessingFailure("Image processing failed"))
        service = ProjectService(self.db, self.cache, transcode=failing)
        with self.assertRaises(ProcessingFailure):
            service.create(project_fields(), raw_image=b"bytes")
        self.assertEqual(self.db.projects, {})

    def test_pipeline_errors_map_to_http_errors(self):
        encode_error = OSError("disk full")
        failing = MagicMock(
            side_effect=transcoder.TranscodeError("Image processing failed", cause=encode_error)
        )
        service = ProjectService(self.db, self.cache, transcode=failing)
        with self.assertRaises(ProcessingFailure) as ctx:
            service.create(project_fields(), raw_image=b"bytes")
        self.assertNotIsInstance(ctx.exception, UnsupportedFormat)
        self.assertIs(ctx.exception.cause, encode_error)

        with self.assertRaises(UnsupportedFormat) as ctx:
            self.service.create(project_fields(), raw_image=b"not an image")
        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(self.db.projects, {})

    def test_update_without_image_fields_keeps_image(self):
        created = self.service.create(project_fields(), raw_image=png_bytes((400, 200)))
        before = self.db.projects[created["id"]].image

        updated = self.service.update(created["id"], {"featured": "true"})

        self.assertTrue(updated["featured"])
        self.assertEqual(updated["title"], "Demo")
        self.assertEqual(updated["tags"], ["x"])
        self.assertEqual(self.db.projects[created["id"]].image, before)
        self.assertEqual(updated["createdAt"], created["createdAt"])
        self.assertGreater(updated["updatedAt"], created["updatedAt"])

    def test_update_remove_image_clears_composite(self):
        created = self.service.create(project_fields(), raw_image=png_bytes((400, 200)))
        updated = self.service.update(created["id"], {}, remove_image=True)
        self.assertIsNone(updated["image"])
        with self.assertRaises(NotFound):
            self.service.get_image(created["id"], "thumbnail")

    def test_update_replaces_image_atomically(self):
        created = self.service.create(project_fields(), raw_image=png_bytes((400, 200)))
        updated = self.service.update(
            created["id"], {}, raw_image=png_bytes((2000, 2000))
        )
        self.assertNotEqual(
            updated["image"]["optimizedSize"], created["image"]["optimizedSize"]
        )
        with Image.open(io.BytesIO(self.service.get_image(created["id"]).data)) as img:
            self.assertEqual(img.size, (1200, 1200))

    def test_update_with_new_image_and_remove_flag_is_rejected(self):
        created = self.service.create(project_fields())
        with self.assertRaises(ValidationError) as ctx:
            self.service.update(
                created["id"], {}, raw_image=png_bytes(), remove_image=True
            )
        self.assertEqual(ctx.exception.errors[0]["field"], "removeImage")

    def test_update_validates_merged_record(self):
        created = self.service.create(project_fields())
        with self.assertRaises(ValidationError):
            self.service.update(created["id"], {"description": "short"})
        self.assertEqual(
            self.service.get(created["id"])["data"]["description"], DESCRIPTION
        )

    def test_update_with_blank_category_and_featured_keeps_stored_values(self):
        created = self.service.create(project_fields(category="ai", featured="true"))
        updated = self.service.update(
            created["id"], {"category": "", "featured": "  "}
        )
        self.assertEqual(updated["category"], "ai")
        self.assertTrue(updated["featured"])
        stored = self.db.projects[created["id"]]
        self.assertEqual((stored.category, stored.featured), ("ai", True))

        with self.assertRaises(ValidationError):
            self.service.update(created["id"], {"title": ""})

    def test_update_missing_project(self):
        with self.assertRaises(NotFound):
            self.service.update("missing", {"title": "x"})

    def test_delete_is_not_idempotent(self):
        created = self.service.create(project_fields())
        deleted = self.service.delete(created["id"])
        self.assertEqual(deleted["id"], created["id"])
        with self.assertRaises(NotFound):
            self.service.get(created["id"])
        with self.assertRaises(NotFound):
            self.service.delete(created["id"])

    def test_list_pagination(self):
        for i in range(25):
            self.service.create(project_fields(title=f"Project {i}"))

        first = self.service.list(page=1, limit=10)
        self.assertEqual(first["pagination"], {"total": 25, "page": 1, "pages": 3, "limit": 10})
        self.assertEqual(len(first["data"]), 10)
        self.assertEqual(first["data"][0]["title"], "Project 24")

        last = self.service.list(page=3, limit=10)
        self.assertEqual(len(last["data"]), 5)

        beyond = self.service.list(page=7, limit=10)
        self.assertEqual(beyond["data"], [])
        self.assertEqual(beyond["pagination"]["total"], 25)

        clamped = self.service.list(page=1, limit=500)
        self.assertEqual(clamped["pagination"]["limit"], 100)
        self.assertEqual(clamped["pagination"]["pages"], math.ceil(25 / 100))
        self.assertEqual(len(clamped["data"]), 25)

    def test_list_rejects_bad_pagination(self):
        with self.assertRaises(ValidationError):
            self.service.list(page=0)
        with self.assertRaises(ValidationError):
            self.service.list(limit=0)
        with self.assertRaises(ValidationError):
            self.service.list(category="spaceship")

    def test_list_orders_equal_timestamps_by_id(self):
        service = ProjectService(self.db, self.cache, clock=lambda: 1000.0)
        ids = [service.create(project_fields(title=f"P{i}"))["id"] for i in range(5)]
        listed = [p["id"] for p in service.list(limit=10)["data"]]
        self.assertEqual(listed, sorted(ids))

    def test_list_filters(self):
        self.service.create(project_fields(title="Robot arm", category="embedded", tags="c, rtos"))
        self.service.create(project_fields(title="Chess bot", category="ai", featured=True, tags="python"))
        self.service.create(project_fields(title="Landing page", tags="react"))

        featured = self.service.list(featured=True)["data"]
        self.assertEqual([p["title"] for p in featured], ["Chess bot"])

        embedded = self.service.list(category="embedded")["data"]
        self.assertEqual([p["title"] for p in embedded], ["Robot arm"])

        by_tag = self.service.list(search="REACT")["data"]
        self.assertEqual([p["title"] for p in by_tag], ["Landing page"])

        by_terms = self.service.list(search="chess python")["data"]
        self.assertEqual([p["title"] for p in by_terms], ["Chess bot"])

    def test_list_is_served_from_cache_until_a_write(self):
        self.service.create(project_fields())
        first = self.service.list()
        second = self.service.list()
        self.assertFalse(first["fromCache"])
        self.assertTrue(second["fromCache"])
        self.assertEqual(first["data"], second["data"])
        self.assertEqual(first["pagination"], second["pagination"])

        self.service.create(project_fields(title="Another"))
        third = self.service.list()
        self.assertFalse(third["fromCache"])
        self.assertEqual(third["pagination"]["total"], 2)

    def test_get_is_cached_and_invalidated_on_update(self):
        created = self.service.create(project_fields())
        self.assertFalse(self.service.get(created["id"])["fromCache"])
        self.assertTrue(self.service.get(created["id"])["fromCache"])

        self.service.update(created["id"], {"title": "Renamed"})
        fresh = self.service.get(created["id"])
        self.assertFalse(fresh["fromCache"])
        self.assertEqual(fresh["data"]["title"], "Renamed")

    def test_cache_unavailability_does_not_change_results(self):
        broken = RedisCache(url="redis://localhost:6379/0")
        broken.client = MagicMock()
        down = redis_exceptions.ConnectionError("connection refused")
        broken.client.get.side_effect = down
        broken.client.setex.side_effect = down
        broken.client.delete.side_effect = down
        broken.client.scan_iter.side_effect = down

        with_broken_cache = ProjectService(self.db, broken, clock=self.clock)
        without_cache = ProjectService(self.db, NullCache(), clock=self.clock)

        created = with_broken_cache.create(project_fields())
        for service in (with_broken_cache, without_cache):
            listing = service.list()
            self.assertFalse(listing["fromCache"])
            self.assertEqual(listing["pagination"]["total"], 1)
            self.assertEqual(service.get(created["id"])["data"]["id"], created["id"])

        self.assertEqual(with_broken_cache.list(), without_cache.list())

    def test_get_image_not_found_cases(self):
        created = self.service.create(project_fields())
        with self.assertRaises(NotFound):
            self.service.get_image(created["id"], "full")
        with self.assertRaises(NotFound):
            self.service.get_image("missing", "full")
        with self.assertRaises(NotFound):
            self.service.get_image(created["id"], "original")


if __name__ == "__main__":
    unittest.main()
