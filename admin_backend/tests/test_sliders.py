import unittest

from admin_backend.errors import NotFoundError, ValidationError
from admin_backend.replication import ReplicationEngine
from admin_backend.sliders import SliderService, clean_slider_data, validate_link
from admin_backend.tests.support import BackendTestCase, png_upload
from admin_backend.unique_codes import UniqueCodeGenerator


class SliderValidationTests(unittest.TestCase):
    def test_colors_and_links(self):
        cleaned = clean_slider_data(
            {"title": "Hi", "title_color": "#A1b2C3", "button_link": "/explore"}
        )
        self.assertEqual(cleaned["title_color"], "#A1b2C3")
        with self.assertRaises(ValidationError):
            clean_slider_data({"title_color": "red"})
        with self.assertRaises(ValidationError):
            validate_link("not a url")
        with self.assertRaises(ValidationError):
            validate_link("ftp://example.com/file")
        validate_link("https://example.com/campaigns")

    def test_unknown_or_protected_fields(self):
        with self.assertRaises(ValidationError):
            clean_slider_data({"unique_code": 1})
        with self.assertRaises(ValidationError):
            clean_slider_data({"headline": "x"})


class SliderServiceTests(BackendTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        repo = self.backend.sliders
        engine = ReplicationEngine(
            repo,
            self.directory,
            UniqueCodeGenerator(repo),
            self.files,
            bucket="sliders",
            file_prefix="slider",
            file_field="slider_image",
        )
        self.service = SliderService(repo, self.directory, engine)

    async def test_create_requires_image_and_title(self):
        with self.assertRaises(ValidationError):
            await self.service.create({"title": "Summer"}, None)
        with self.assertRaises(ValidationError):
            await self.service.create({"title": " "}, png_upload())
        pdf = png_upload("doc.pdf")
        pdf.mimetype = "application/pdf"
        with self.assertRaises(ValidationError):
            await self.service.create({"title": "Summer"}, pdf)
        self.assertEqual(self.storage.stored_objects, {})

    async def test_create_and_list(self):
        slider = await self.service.create(
            {"title": "Summer", "button_link": "https://example.com"},
            png_upload(),
            language="es",
        )
        self.assertEqual(slider.language.folder, "es")
        self.assertEqual(slider.title_color, "#000000")
        self.assertEqual(
            slider.slider_image, f"sliders/slider-{slider.unique_code}_es.png"
        )

        active = await self.service.list_active("en")
        self.assertEqual(len(active), 1)
        page = await self.service.list_admin(title="summ", language="es")
        self.assertEqual(page.pagination.total_count, 1)
        page = await self.service.list_admin(unique_code=slider.unique_code)
        self.assertEqual(page.items[0].language.folder, "en")

    async def test_list_active_empty_is_not_found(self):
        with self.assertRaises(NotFoundError):
            await self.service.list_active()

    async def test_update_fields_and_image(self):
        slider = await self.service.create({"title": "Summer"}, png_upload())
        old_image = slider.slider_image

        unchanged = await self.service.update(slider.public_id, {})
        self.assertEqual(unchanged.title, "Summer")

        updated = await self.service.update(
            slider.public_id, {"title": "Autumn", "custom_color": True}
        )
        self.assertEqual(updated.title, "Autumn")
        self.assertTrue(updated.custom_color)
        self.assertEqual(updated.slider_image, old_image)

        webp = png_upload("autumn.webp", data=b"RIFF\x00\x00\x00\x00WEBPVP8 ")
        webp.mimetype = "image/webp"
        updated = await self.service.update(slider.public_id, {}, webp)
        self.assertTrue(updated.slider_image.endswith("_en.webp"))
        self.assertNotIn(old_image, self.storage.stored_objects)

    async def test_delete_removes_every_language(self):
        slider = await self.service.create({"title": "Summer"}, png_upload())
        deletion = await self.service.delete(slider.public_id)
        self.assertEqual(deletion.count, 2)
        self.assertEqual(self.storage.stored_objects, {})

    async def test_bulk_status_and_delete(self):
        first = await self.service.create({"title": "One"}, png_upload())
        second = await self.service.create({"title": "Two"}, png_upload())

        count = await self.service.bulk_update_status([first.public_id], False)
        self.assertEqual(count, 1)
        active = await self.service.list_active("en")
        self.assertEqual([s.title for s in active], ["Two"])
        with self.assertRaises(NotFoundError):
            await self.service.bulk_update_status(["missing"], True)

        removed = await self.service.bulk_delete(
            [first.public_id, second.public_id, "missing"]
        )
        self.assertEqual(removed, 4)
        self.assertEqual(await self.backend.sliders.count(), 0)


if __name__ == "__main__":
    unittest.main()
