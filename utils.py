"""
Image loading, logging and reporting requirements:

- opencv-python
- numpy
"""

import sys

import cv2
import numpy as np

from chunks import PixelBuffer

# OpenCV colors are BGR
BLACK = (0,0,0)
GREEN = (0,255,0)
BLUE = (255,0,0)
YELLOW = (0,255,255)

DUMP_PATH = '/tmp/img-sub.png'

LOG_VERBOSE = 0


class DecodeError(ValueError):
	pass


class DimensionMismatch(ValueError):
	pass


def set_verbosity(level):
	global LOG_VERBOSE
	LOG_VERBOSE = level


def log_info(*args, level=1):
	if LOG_VERBOSE < level:
		return
	print(*args, file=sys.stderr)


def load_image(path):
	"""
	Load an image as RGBA, or explain why that wasn't possible
	"""
	image = cv2.imread(str(path), cv2.IMREAD_UNCHANGED)
	if image is None:
		raise DecodeError(f'Failed to decode {path}')

	if image.dtype == np.uint16:
		# 16 bit PNGs and TIFFs: keep the high byte
		image = (image >> 8).astype(np.uint8)
	elif image.dtype != np.uint8:
		raise DecodeError(f'Failed to decode {path}')

	if image.ndim == 2:
		image = cv2.cvtColor(image, cv2.COLOR_GRAY2RGBA)
	elif image.shape[2] == 3:
		image = cv2.cvtColor(image, cv2.COLOR_BGR2RGBA)
	elif image.shape[2] == 4:
		image = cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA)
	else:
		raise DecodeError(f'Failed to decode {path}')

	log_info(f'loaded {path} ({image.shape[1]}x{image.shape[0]})')
	return PixelBuffer(image, path=str(path))


def check_same_size(a, b):
	"""
	We only diff images that line up exactly; anything else is a usage error.
	"""
	if a.size != b.size:
		raise DimensionMismatch(
			f'Images have different sizes: {a.width}x{a.height} vs {b.width}x{b.height}'
		)
	return (a, b, )


def format_rect(rect, imagemagick=False):
	if imagemagick:
		return f'{rect.w}x{rect.h}+{rect.x}+{rect.y}'
	return f'{rect.x},{rect.y}+{rect.w}x{rect.h}'


def report_lines(result, same=False, imagemagick=False):
	"""
	Turn a diff result into the lines we print on stdout.

	In --same mode, that's every in-place match. Otherwise it's every moved
	match as "old new", followed by every region of the new image that could
	not be found in the old one at all.
	"""
	if same:
		for match in result.in_place:
			yield format_rect(match.new.rect, imagemagick)
		return

	for match in result.moved:
		yield f'{format_rect(match.old.rect, imagemagick)} {format_rect(match.new.rect, imagemagick)}'

	for rect in result.unmatched:
		yield format_rect(rect, imagemagick)


def highlight_matches(old, new, result, dump_path=DUMP_PATH, imagemagick=False):
	"""
	Show moved content using yellow highlights, and unmatched content in green,
	drawn over the new image with the old one faintly blended in.
	"""
	canvas = cv2.cvtColor(new.pixels.copy(), cv2.COLOR_RGBA2BGR)
	background = cv2.cvtColor(old.pixels.copy(), cv2.COLOR_RGBA2BGR)
	canvas = cv2.addWeighted(canvas, 0.7, background, 0.3, 0)

	fills = canvas.copy()
	for match in result.moved:
		r = match.new.rect
		cv2.rectangle(fills, (r.x, r.y), (r.right - 1, r.bottom - 1), YELLOW, cv2.FILLED)
	unmatched = result.unmatched
	for r in unmatched:
		cv2.rectangle(fills, (r.x, r.y), (r.right - 1, r.bottom - 1), GREEN, cv2.FILLED)
	canvas = cv2.addWeighted(fills, 0.5, canvas, 0.5, 0)

	for r in [match.new.rect for match in result.moved] + unmatched:
		cv2.rectangle(canvas, (r.x, r.y), (r.right - 1, r.bottom - 1), BLACK, 1)

	# labels go on last so that no fill covers them
	for match in result.moved:
		label = f'{format_rect(match.old.rect, imagemagick)} moved to {format_rect(match.new.rect, imagemagick)}'
		origin = (match.new.x + 2, match.new.y + 10)
		cv2.putText(canvas, label, origin, cv2.FONT_HERSHEY_PLAIN, 0.6, BLUE, 1, cv2.LINE_AA)

	try:
		written = cv2.imwrite(str(dump_path), canvas)
	except cv2.error as err:
		# no writer for the extension, for one
		raise OSError(f'could not write {dump_path}') from err
	if not written:
		raise OSError(f'could not write {dump_path}')
	log_info(f'Dumped {dump_path}')
	return dump_path
