"""
Report which blocks of a new image can also be found in an old one, and where.

Do not feed this JPEG images: block compression noise means almost nothing
will match exactly. Use a bitmap format like PNG, or raise --threshold.
"""

import sys
import math
import argparse

import utils
from matching import DiffOptions, diff_images


class ArgumentParser(argparse.ArgumentParser):
	def error(self, message):
		# any argument problem is exit status 1, not argparse's 2
		self.print_usage(sys.stderr)
		self.exit(1, f'{self.prog}: error: {message}\n')


def positive_int(value):
	try:
		number = int(value)
	except ValueError:
		raise argparse.ArgumentTypeError(f'invalid value ({value}), must be a positive integer')
	if number <= 0:
		raise argparse.ArgumentTypeError(f'invalid value ({value}), must be a positive integer')
	return number


def threshold_value(value):
	"""
	A color distance on the 0-255 channel scale, or a percentage of 256.
	"""
	text = value[:-1] if value.endswith('%') else value
	try:
		threshold = float(text)
	except ValueError:
		raise argparse.ArgumentTypeError(f'invalid threshold ({value}), must be a positive float value')
	if not math.isfinite(threshold) or threshold < 0:
		raise argparse.ArgumentTypeError(f'invalid threshold ({value}), must be a positive float value')
	if value.endswith('%'):
		threshold = threshold / 100 * 256
	return threshold


def build_parser():
	parser = ArgumentParser(prog='img-diff', description='Find the blocks of a new image that can also be found, possibly moved, in an old one.')
	parser.add_argument('old', help='The path for the old image.')
	parser.add_argument('new', help='The path for the new image.')
	parser.add_argument('-v', '--verbose', action='count', default=0, help='Log progress to stderr. Repeat for more detail.')
	parser.add_argument('--range', dest='search_range', type=positive_int, default=2, help='How many grid cells around a chunk to search. Defaults to 2.')
	parser.add_argument('--min-size', type=positive_int, default=10, help='The smallest chunk side length in pixels. Defaults to 10.')
	parser.add_argument('--threshold', type=threshold_value, default=0.0, help='Color distance still considered equal, e.g. 3 or 2%%. Defaults to 0.')
	parser.add_argument('--same', action='store_true', help='Only print the areas that are identical and did not move.')
	parser.add_argument('--no-join', action='store_true', help="Don't join adjacent matches that moved together.")
	parser.add_argument('--dump-images', action='store_true', help='Write an annotated overlay image to the dump path.')
	parser.add_argument('--dump-path', default=utils.DUMP_PATH, help=f'Where --dump-images writes to. Defaults to {utils.DUMP_PATH}.')
	parser.add_argument('--imagemagick', action='store_true', help='Print rects as WxH+X+Y instead of X,Y+WxH.')
	return parser


def main(argv=None):
	args = build_parser().parse_args(argv)
	utils.set_verbosity(args.verbose)

	utils.log_info('range:', args.search_range)
	utils.log_info('min-size:', args.min_size)
	utils.log_info('threshold:', args.threshold)

	try:
		old_image, new_image = utils.check_same_size(
			utils.load_image(args.old),
			utils.load_image(args.new)
		)
	except (utils.DecodeError, utils.DimensionMismatch) as err:
		print(err, file=sys.stderr)
		return 1

	options = DiffOptions(
		search_range=args.search_range,
		min_size=args.min_size,
		threshold=args.threshold,
		join=not args.no_join,
	)
	result = diff_images(old_image, new_image, options)

	if args.dump_images:
		try:
			utils.highlight_matches(old_image, new_image, result, args.dump_path, args.imagemagick)
		except OSError as err:
			print(err, file=sys.stderr)
			return 1

	for line in utils.report_lines(result, same=args.same, imagemagick=args.imagemagick):
		print(line)

	return 0


if __name__ == '__main__':
	sys.exit(main())
