from urllib.parse import quote

IMAGE_ENDPOINT = "https://image.pollinations.ai/prompt/"

STYLE_SUFFIX = (
    ", 2D anime cel-shaded, clean line art, expressive faces, cinematic lighting, "
    "dynamic motion lines, consistent character design, no text, no watermark, "
    "no logo, not photorealistic, not 3D, not western comic"
)


def to_image_url(image_prompt: str) -> str:
    """Scene description → illustration URL with the house style appended."""
    return IMAGE_ENDPOINT + quote(f"{image_prompt}{STYLE_SUFFIX}", safe="!'()*")
