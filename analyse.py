import optparse

import matplotlib.pyplot as plt
import numpy as np
from PIL import Image

import qoi

HASH_SIZE = qoi.HASH_SIZE


def hash_distribution(bitmap):
    """Count how many pixels of ``bitmap`` land in each colour cache slot."""
    px = bitmap.pixels_array.reshape(-1, 4).astype(np.int64)
    slots = (px[:, 0] * 3 + px[:, 1] * 5 + px[:, 2] * 7 + px[:, 3] * 11) % HASH_SIZE
    return np.bincount(slots, minlength=HASH_SIZE)


def plot_distribution(counts, output=None, title=None):
    fig, ax = plt.subplots()
    ax.bar(range(len(counts)), counts, color='blue', edgecolor='black', width=1.0)
    ax.set_xlabel('cache slot')
    ax.set_ylabel('pixels')
    if title:
        ax.set_title(title)
    if output:
        fig.savefig(output)
    else:
        plt.show()
    plt.close(fig)


def main(argv=None):
    parser = optparse.OptionParser(usage='usage: %prog [options] image')
    parser.add_option('-o', '--output', dest='output', default=None,
                      help='save the plot to this file instead of showing it')
    (options, args) = parser.parse_args(argv)
    if len(args) != 1:
        parser.print_usage()
        return 2

    with Image.open(args[0]) as im:
        bitmap = qoi.Bitmap.from_image(im)
    counts = hash_distribution(bitmap)
    print(f"{args[0]}: {int(counts.sum())} pixels, {int(np.count_nonzero(counts))} of {HASH_SIZE} slots used")
    plot_distribution(counts, options.output, title=args[0])
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
