#!/usr/bin/env python3
"""
Demo script for pxmatch
Renders a small scene, perturbs it, and shows the diff counts
"""

from PIL import Image, ImageDraw

from pxmatch import MatchConfig, compare_files


def create_test_images():
    """Create test images for demonstration"""

    print("Creating test images...")

    # Image 1: Original
    img1 = Image.new('RGBA', (400, 300), color='white')
    draw = ImageDraw.Draw(img1)
    draw.ellipse([50, 50, 150, 150], fill='red', outline='darkred', width=3)
    draw.rectangle([200, 100, 350, 200], fill='green', outline='darkgreen', width=3)
    draw.text((120, 250), "pxmatch test render", fill='black')
    img1.save('test_before.png')
    print("✓ Created test_before.png")

    # Image 2: Same scene with a patch painted over and the circle nudged
    img2 = Image.new('RGBA', (400, 300), color='white')
    draw = ImageDraw.Draw(img2)
    draw.ellipse([52, 50, 152, 150], fill='red', outline='darkred', width=3)
    draw.rectangle([200, 100, 350, 200], fill='green', outline='darkgreen', width=3)
    draw.rectangle([210, 110, 240, 140], fill='yellow')
    draw.text((120, 250), "pxmatch test render", fill='black')
    img2.save('test_after.png')
    print("✓ Created test_after.png")

    return 'test_before.png', 'test_after.png'


def run_demo():
    """Run the pxmatch demonstration"""
    print("=" * 60)
    print("pxmatch - Demo")
    print("=" * 60)

    before, after = create_test_images()

    for config in (MatchConfig(), MatchConfig(include_antialiased=True), MatchConfig(threshold=0.5)):
        result = compare_files(before, after, config)
        print(f"threshold={config.threshold} include_antialiased={config.include_antialiased}: "
              f"diff: {result.diff_count} ({result.diff_ratio:.2%})")

    compare_files(before, after, dest='test_diff.png')
    print("✓ Diff image written to test_diff.png")


if __name__ == '__main__':
    run_demo()
