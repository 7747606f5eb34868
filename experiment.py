#!/usr/bin/env python3

import io
import os
import json
import time
import logging
import optparse
from collections import Counter

import tabulate
from PIL import Image

import qoi

CLOCKS_PER_SEC = 1000000
dataset_dir = 'dataset'
stats_file = 'stats.json'

header = ['impl', 'encode ms', 'decode ms', 'size bytes']
detailed_header = ['test', 'impl', 'encode ms',
                   'decode ms', 'pixels', 'size bytes', 'bytes/pixel']

qoi_ops = qoi.qoi_ops

# helper functions
# ---------------


def clock():
    return int(time.perf_counter() * CLOCKS_PER_SEC)


def msec(clks):
    return (clks*1000)/CLOCKS_PER_SEC


def aggregate(a, b):
    return {impl: {stat: a[impl][stat] + b[impl][stat] for stat in a[impl]} for impl in ['png', 'qoi']}


def average(struct, ittr):
    return {impl: {stat: struct[impl][stat]/ittr for stat in struct[impl]} for impl in ['png', 'qoi']}


def empty_stats():
    return {'png': {'encode': 0, 'decode': 0, 'size': 0},
            'qoi': {'encode': 0, 'decode': 0, 'size': 0}}


def pix_count(file_path):
    with Image.open(file_path) as img:
        return [img.width, img.height]


def image_score(time, size, pixel_count):
    return (size / pixel_count) * time


def load_bitmap(file_path):
    with Image.open(file_path) as img:
        return qoi.Bitmap.from_image(img)


# ---------------
def run_benchmark(file_path):
    bitmap = load_bitmap(file_path)
    image = bitmap.to_image()

    start = clock()
    png_buf = io.BytesIO()
    image.save(png_buf, format='PNG')
    png_encode = clock() - start

    start = clock()
    with Image.open(io.BytesIO(png_buf.getvalue()), formats=['PNG']) as png:
        png.load()
    png_decode = clock() - start

    start = clock()
    qoi_data = qoi.encode(bitmap)
    qoi_encode = clock() - start

    start = clock()
    decoded = qoi.decode(qoi_data)
    qoi_decode = clock() - start

    if decoded != bitmap:
        logging.error('QOI round trip of %s is not lossless', file_path)

    stats_struct = {'png': {
        'encode': png_encode, 'decode': png_decode, 'size': len(png_buf.getvalue())},
        'qoi': {
        'encode': qoi_encode, 'decode': qoi_decode, 'size': len(qoi_data)}}
    return stats_struct


# ---------------
def aggregate_stats(struct):
    qoi_stats = [0, 0, 0]
    png_stats = [0, 0, 0]
    for test_name, test_stats in struct.items():
        png_stats[0] += msec(test_stats['png']['encode'])
        png_stats[1] += msec(test_stats['png']['decode'])
        png_stats[2] += test_stats['png']['size']
        qoi_stats[0] += msec(test_stats['qoi']['encode'])
        qoi_stats[1] += msec(test_stats['qoi']['decode'])
        qoi_stats[2] += test_stats['qoi']['size']
    return [png_stats, qoi_stats]


# ---------------
def op_freq(file_path):
    op_dict = Counter({op: 0 for op in qoi_ops})
    qoi.encode(load_bitmap(file_path), op_dict)
    return dict(op_dict)


def list_tests(directory):
    return sorted(t for t in os.listdir(directory)
                  if os.path.isfile(os.path.join(directory, t)))


def summary_rows(stats_struct):
    return [[impl, msec(stats_struct[impl]['encode']), msec(stats_struct[impl]['decode']),
             int(stats_struct[impl]['size'])] for impl in ['png', 'qoi']]


def detail_rows(test, stats_struct, pixel_count):
    return [[test] + row[:3] + [pixel_count, row[3], row[3] / pixel_count]
            for row in summary_rows(stats_struct)]


def frequency_rows(directory):
    op_list = []
    for test in list_tests(directory):
        freq = op_freq(os.path.join(directory, test))
        total = sum(freq.values())
        op_list.append([test] + [freq[op]/total for op in qoi_ops])
    return op_list


def benchmark_dataset(directory, epochs):
    """Benchmark every image in ``directory`` ``epochs`` times.

    Returns the stats averaged over the epochs and the list of per run
    samples that ends up in the statistics file.
    """
    totals = empty_stats()
    samples = []
    for e in range(0, epochs):
        for test in list_tests(directory):
            test_path = os.path.join(directory, test)
            logging.debug('%d %s', e, test_path)
            run_stats = run_benchmark(test_path)
            totals = aggregate(totals, run_stats)
            dimension = pix_count(test_path)
            run_stats['name'] = test
            run_stats['epoch'] = e
            run_stats['dimension'] = dimension
            run_stats['pixels'] = dimension[0] * dimension[1]
            samples.append(run_stats)
    return average(totals, epochs), samples


def per_test_rows(samples, epochs):
    table_rows = []
    for test in sorted({s['name'] for s in samples}):
        runs = [s for s in samples if s['name'] == test]
        stats_struct = empty_stats()
        for ittr in runs:
            stats_struct = aggregate(stats_struct, ittr)
        table_rows += detail_rows(test, average(stats_struct, epochs), runs[0]['pixels'])
    return table_rows

# ---------------


def main(argv=None):
    usage = 'usage: %prog [options] dataset... | all'
    parser = optparse.OptionParser(usage=usage)
    parser.add_option('-e', '--epochs', dest='epochs',
                      default=1, type=int,
                      help='number of iterations (%default)')
    parser.add_option('-q', '--frequency', dest='freq',
                      default=False, action='store_true',
                      help='analyse instruction frequency qoi (%default)')
    parser.add_option('-v', '--verbose', dest='verbose',
                      default=False, action='store_true',
                      help='print detailed analysis for each test (%default)')
    parser.add_option('-d', '--dataset-dir', dest='dataset_dir',
                      default=dataset_dir,
                      help='directory holding the datasets (%default)')
    parser.add_option('-o', '--output', dest='output',
                      default=stats_file,
                      help='per test statistics file (%default)')
    (options, args) = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)

    if (len(args) == 0):
        parser.print_usage()
        if os.path.isdir(options.dataset_dir):
            print(os.listdir(options.dataset_dir))
        return 2

    if (args[0] == 'all'):
        datasets = sorted(os.listdir(options.dataset_dir))
    else:
        datasets = args
    print(f"dataset {datasets}, epochs: {options.epochs}")

    if (options.freq):
        op_list = []
        for dir in datasets:
            op_list += frequency_rows(os.path.join(options.dataset_dir, dir))
        print('\n--- frequency analysis ---')
        print(tabulate.tabulate(op_list, headers=["test"] + qoi_ops,
                                floatfmt='.2f', tablefmt='plain'))
        return 0

    stats_output = []
    per_dataset = {}
    for dir in datasets:
        stats_struct, samples = benchmark_dataset(
            os.path.join(options.dataset_dir, dir), options.epochs)
        per_dataset[dir] = samples
        stats_output += samples
        print('\n--- %s benchmark data ---' % (dir))
        print(tabulate.tabulate(summary_rows(stats_struct), headers=header,
                                floatfmt='.2f', tablefmt='plain'))

    if options.verbose:
        for dir in datasets:
            print('\n--- per test statistic ---')
            print(tabulate.tabulate(per_test_rows(per_dataset[dir], options.epochs),
                                    headers=detailed_header,
                                    floatfmt='.2f', tablefmt='plain'))

    with open(options.output, 'w') as jsonfile:
        jsonfile.write(json.dumps(stats_output, indent=4))
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
