import unittest

from genstudio.exceptions import MalformedResultError
from genstudio.models import ResultKind
from genstudio.normalizer import ResultNormalizer


class TestResultNormalizer(unittest.TestCase):
    def setUp(self):
        self.normalizer = ResultNormalizer()

    def test_image_list_with_metadata(self):
        payload = {
            "images": [
                {"url": "https://cdn.fal.media/a.png", "content_type": "image/png", "file_size": 1024},
                {"url": "https://cdn.fal.media/b.png"},
            ],
            "seed": 42,
            "has_nsfw_concepts": [False, False],
        }
        result = self.normalizer.normalize("fal-ai/recraft-20b", payload)

        self.assertEqual(result.kind, ResultKind.IMAGE)
        self.assertEqual([a.url for a in result.assets], ["https://cdn.fal.media/a.png", "https://cdn.fal.media/b.png"])
        self.assertEqual(result.assets[0].size_bytes, 1024)
        self.assertEqual(result.assets[1].content_type, "image/png")
        self.assertEqual(result.provider_metadata, {"seed": 42, "has_nsfw_concepts": [False, False]})

    def test_single_video_object(self):
        payload = {"video": {"url": "https://cdn.fal.media/v.mp4"}, "timings": {"inference": 12.5}}
        result = self.normalizer.normalize("fal-ai/kling-video/v2/master/text-to-video", payload)

        self.assertEqual(result.kind, ResultKind.VIDEO)
        self.assertEqual(result.assets[0].content_type, "video/mp4")
        self.assertEqual(result.provider_metadata["timings"], {"inference": 12.5})

    def test_runway_output_url_list(self):
        payload = {"id": "task-1", "status": "SUCCEEDED", "output": ["https://dnznrvs05pmza.cloudfront.net/x.mp4"]}
        result = self.normalizer.normalize("runway/gen4_turbo", payload)

        self.assertEqual(result.kind, ResultKind.VIDEO)
        self.assertEqual(len(result.assets), 1)
        self.assertEqual(result.provider_metadata, {"id": "task-1", "status": "SUCCEEDED"})

    def test_audio_payload(self):
        result = self.normalizer.normalize(
            "fal-ai/elevenlabs/tts/multilingual-v2",
            {"audio": {"url": "https://cdn.fal.media/s.mp3", "content_type": "audio/mpeg"}},
        )
        self.assertEqual(result.kind, ResultKind.AUDIO)
        self.assertEqual(result.assets[0].content_type, "audio/mpeg")

    def test_training_payload_includes_config_file(self):
        payload = {
            "diffusers_lora_file": {"url": "https://cdn.fal.media/lora.safetensors"},
            "config_file": {"url": "https://cdn.fal.media/config.json"},
        }
        result = self.normalizer.normalize("fal-ai/flux-lora-fast-training", payload)

        self.assertEqual(result.kind, ResultKind.MODEL)
        self.assertEqual(len(result.assets), 2)
        self.assertEqual(result.provider_metadata, {})

    def test_data_envelope_is_unwrapped(self):
        payload = {"data": {"images": [{"url": "https://x/1.png"}]}, "requestId": "req-9"}
        result = self.normalizer.normalize("fal-ai/recraft-v3", payload)

        self.assertEqual(result.assets[0].url, "https://x/1.png")
        self.assertEqual(result.provider_metadata, {"requestId": "req-9"})

    def test_data_uri_content_type(self):
        result = self.normalizer.normalize("fal-ai/recraft-v3", {"images": ["data:image/webp;base64,AAAA"]})
        self.assertEqual(result.assets[0].content_type, "image/webp")

    def test_unusable_file_sizes_are_dropped(self):
        payload = {"images": [
            {"url": "https://x/1.png", "file_size": float("inf")},
            {"url": "https://x/2.png", "file_size": float("nan")},
            {"url": "https://x/3.png", "file_size": 2048.0},
        ]}
        result = self.normalizer.normalize("fal-ai/recraft-v3", payload)
        self.assertEqual([a.size_bytes for a in result.assets], [None, None, 2048])

    def test_missing_asset_raises(self):
        with self.assertRaises(MalformedResultError):
            self.normalizer.normalize("fal-ai/recraft-v3", {"seed": 1})
        with self.assertRaises(MalformedResultError):
            self.normalizer.normalize("fal-ai/recraft-v3", {"images": [{"url": ""}]})
        with self.assertRaises(MalformedResultError):
            self.normalizer.normalize("fal-ai/recraft-v3", ["not", "a", "dict"])

    def test_kind_comes_from_model_not_payload(self):
        # A video-shaped payload from an image model has no image asset
        with self.assertRaises(MalformedResultError):
            self.normalizer.normalize("fal-ai/recraft-v3", {"video": {"url": "https://x/v.mp4"}})


if __name__ == "__main__":
    unittest.main()
