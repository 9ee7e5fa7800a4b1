import random
import unittest
from unittest.mock import patch

from admin_backend.errors import (
    ConflictError,
    DependencyError,
    InUseError,
    NotFoundError,
    ValidationError,
)
from admin_backend.replication import ReplicationEngine
from admin_backend.tests.support import BackendTestCase, png_upload
from admin_backend.unique_codes import UniqueCodeGenerator


class ReplicationEngineTests(BackendTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.sliders = ReplicationEngine(
            self.backend.sliders,
            self.directory,
            UniqueCodeGenerator(self.backend.sliders, rng=random.Random(11)),
            self.files,
            bucket="sliders",
            file_prefix="slider",
            file_field="slider_image",
        )
        self.dropdowns = ReplicationEngine(
            self.backend.dropdowns,
            self.directory,
            UniqueCodeGenerator(self.backend.dropdowns, rng=random.Random(12)),
            self.files,
            bucket="dropdowns",
            file_prefix="dropdown",
        )

    async def test_slider_replicated_per_language_with_own_file(self):
        replicas = await self.sliders.create_replica_set(
            {"title": "Summer"}, file=png_upload()
        )

        self.assertEqual(len(replicas), 2)
        code = replicas[0].unique_code
        self.assertEqual({r.unique_code for r in replicas}, {code})
        self.assertEqual(len(str(code)), 10)
        self.assertEqual(
            {r.language_id for r in replicas},
            {self.langs["en"].id, self.langs["es"].id},
        )
        self.assertEqual(
            sorted(r.slider_image for r in replicas),
            [f"sliders/slider-{code}_en.png", f"sliders/slider-{code}_es.png"],
        )
        self.assertEqual(
            sorted(self.storage.stored_objects),
            [f"sliders/slider-{code}_en.png", f"sliders/slider-{code}_es.png"],
        )

    async def test_explicit_language_targets(self):
        replicas = await self.dropdowns.create_replica_set(
            {"name": "Art", "dropdown_type": "category"},
            language_ids=[self.langs["es"].id],
        )
        self.assertEqual([r.language_id for r in replicas], [self.langs["es"].id])

    async def test_set_fields_cannot_be_supplied(self):
        with self.assertRaises(ValidationError):
            await self.dropdowns.create_replica_set({"name": "Art", "unique_code": 1})
        with self.assertRaises(ValueError):
            await self.dropdowns.create_replica_set({"name": "Art"}, file=png_upload())

    async def test_partial_failure_rolls_back_records_and_files(self):
        original_insert = self.backend.sliders.insert
        es_id = self.langs["es"].id

        async def flaky_insert(data):
            if data["language_id"] == es_id:
                raise DependencyError("Database is unavailable")
            return await original_insert(data)

        with patch.object(self.backend.sliders, "insert", side_effect=flaky_insert):
            with self.assertRaises(DependencyError):
                await self.sliders.create_replica_set(
                    {"title": "Summer"}, file=png_upload()
                )

        self.assertEqual(await self.backend.sliders.count(), 0)
        self.assertEqual(self.storage.stored_objects, {})

    async def test_conflict_is_retried_with_fresh_code(self):
        original_insert = self.backend.dropdowns.insert
        es_id = self.langs["es"].id
        failed_codes = []

        async def conflict_once(data):
            if data["language_id"] == es_id and not failed_codes:
                failed_codes.append(data["unique_code"])
                raise ConflictError("DropdownOption already exists")
            return await original_insert(data)

        with patch.object(self.backend.dropdowns, "insert", side_effect=conflict_once):
            replicas = await self.dropdowns.create_replica_set(
                {"name": "Art", "dropdown_type": "category"}
            )

        self.assertEqual(len(replicas), 2)
        self.assertNotEqual(replicas[0].unique_code, failed_codes[0])
        self.assertEqual(
            await self.backend.dropdowns.count({"unique_code": failed_codes[0]}), 0
        )
        self.assertEqual(await self.backend.dropdowns.count(), 2)

    async def test_persistent_conflict_gives_up(self):
        async def always_conflict(data):
            raise ConflictError("DropdownOption already exists")

        with patch.object(self.backend.dropdowns, "insert", side_effect=always_conflict):
            with self.assertRaises(ConflictError):
                await self.dropdowns.create_replica_set({"name": "Art"})
        self.assertEqual(await self.backend.dropdowns.count(), 0)

    async def test_find_and_get_replica(self):
        replicas = await self.dropdowns.create_replica_set({"name": "Art"})
        members = await self.dropdowns.find_replica_set(replicas[0].unique_code)
        self.assertEqual(len(members), 2)
        self.assertTrue(all(m.language is not None for m in members))

        fetched = await self.dropdowns.get_replica(replicas[0].public_id)
        self.assertEqual(fetched.id, replicas[0].id)
        with self.assertRaises(NotFoundError):
            await self.dropdowns.get_replica("missing")

    async def test_update_replica_only_touches_one_language(self):
        replicas = await self.sliders.create_replica_set(
            {"title": "Summer"}, file=png_upload()
        )
        en = next(r for r in replicas if r.language_id == self.langs["en"].id)
        es = next(r for r in replicas if r.language_id == self.langs["es"].id)

        updated = await self.sliders.update_replica(
            es.public_id, {"title": "Verano"}, png_upload("verano.jpg")
        )

        self.assertEqual(updated.title, "Verano")
        code = es.unique_code
        self.assertEqual(updated.slider_image, f"sliders/slider-{code}_es.jpg")
        self.assertIn(f"sliders/slider-{code}_es.jpg", self.storage.stored_objects)
        self.assertNotIn(es.slider_image, self.storage.stored_objects)
        self.assertIn(en.slider_image, self.storage.stored_objects)
        self.assertEqual((await self.sliders.get_replica(en.public_id)).title, "Summer")

        with self.assertRaises(ValidationError):
            await self.sliders.update_replica(es.public_id, {"language_id": "x"})

    async def test_update_with_same_file_name_keeps_file(self):
        replicas = await self.sliders.create_replica_set(
            {"title": "Summer"}, file=png_upload()
        )
        target = replicas[0]
        updated = await self.sliders.update_replica(
            target.public_id, {}, png_upload("other.png")
        )
        self.assertEqual(updated.slider_image, target.slider_image)
        self.assertIn(target.slider_image, self.storage.stored_objects)

    async def test_delete_replica_set_removes_records_and_files(self):
        replicas = await self.sliders.create_replica_set(
            {"title": "Summer"}, file=png_upload()
        )
        code = replicas[0].unique_code

        deletion = await self.sliders.delete_replica_set(code)

        self.assertEqual(deletion.count, 2)
        self.assertEqual(len(deletion.deleted_files), 2)
        self.assertEqual(await self.backend.sliders.count(), 0)
        self.assertEqual(self.storage.stored_objects, {})
        with self.assertRaises(NotFoundError):
            await self.sliders.delete_replica_set(code)

    async def test_delete_refused_while_in_use(self):
        replicas = await self.dropdowns.create_replica_set({"name": "Art"})
        await self.backend.dropdowns.increment(replicas[1].id, "use_count", 3)

        with self.assertRaises(InUseError) as ctx:
            await self.dropdowns.delete_replica_set(replicas[0].unique_code)

        self.assertEqual(ctx.exception.details["use_count"], 3)
        self.assertEqual(await self.backend.dropdowns.count(), 2)

    async def test_file_deletion_failure_does_not_undo_record_deletion(self):
        replicas = await self.sliders.create_replica_set(
            {"title": "Summer"}, file=png_upload()
        )

        with patch.object(self.storage, "delete", side_effect=OSError("disk gone")):
            deletion = await self.sliders.delete_replica_set(replicas[0].unique_code)

        self.assertEqual(deletion.count, 2)
        self.assertEqual(deletion.deleted_files, [])
        self.assertEqual(await self.backend.sliders.count(), 0)


if __name__ == "__main__":
    unittest.main()
