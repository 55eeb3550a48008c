#!/usr/bin/env python

from setuptools import setup, find_packages

setup(name='gauge_detector',
      version='0.1',
      description='Locates analog gauges and their needles in camera frames and shows annotated frames',
      packages=find_packages('src'),
      package_dir={'': 'src'},
      python_requires='>=3.8',
      install_requires=['exifread',
                        'numpy',
                        'opencv-python',
                        'requests',
                        'urllib3',
                        ],
      extras_require={'test': ['pytest']},
      entry_points={'console_scripts': ['gauge-detector=gauge_detector.__main__:run']},
      )
