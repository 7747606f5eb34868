#!/usr/bin/env python3
# Encodes any image Pillow can read to QOI, or decodes QOI to any image
# Pillow can write (type determined by file extension).

import logging
import optparse
import sys
from collections import Counter

import tabulate
from PIL import Image

import qoi


def convert(infile, outfile, decode=False) -> Counter:
    stats = Counter()
    if decode:
        bitmap = qoi.load_qoi(infile)
        bitmap.to_image().save(outfile)
    else:
        with Image.open(infile) as image:
            qoi.save_qoi(image, outfile, stats)
    return stats


def op_table(stats: Counter) -> str:
    total = sum(stats.values()) or 1
    rows = [[op, stats[op], stats[op] / total] for op in qoi.qoi_ops]
    return tabulate.tabulate(rows, headers=['op', 'count', 'share'],
                             floatfmt='.2f', tablefmt='plain')


def main(argv=None):
    parser = optparse.OptionParser(usage='usage: %prog [options] infile outfile')
    parser.add_option('-d', '--decode', dest='decode',
                      default=False, action='store_true',
                      help='decode the QOI input instead of encoding (%default)')
    parser.add_option('-s', '--stats', dest='stats',
                      default=False, action='store_true',
                      help='print op frequencies after encoding (%default)')
    parser.add_option('-v', '--verbose', dest='verbose',
                      default=False, action='store_true',
                      help='debug logging (%default)')
    (options, args) = parser.parse_args(argv)

    if len(args) != 2:
        parser.print_usage()
        return 2

    logging.basicConfig(level=logging.DEBUG if options.verbose else logging.WARNING)

    try:
        stats = convert(args[0], args[1], options.decode)
    except (OSError, qoi.QOIError):
        logging.exception('Converting %s failed', args[0])
        return 1

    if options.stats and not options.decode:
        print(op_table(stats))
    return 0


if __name__ == '__main__':
    sys.exit(main())
