from setuptools import find_packages, setup

setup(
    name='pyelliptic',
    version='0.1.0',
    packages=find_packages(),
    install_requires=[
        'numpy',
        'scipy>=1.9',
        'numba',
        'cached-property',
    ],
    extras_require={
        'test': ['pytest'],
    },
    license='LGPL',
    platforms='any',
    zip_safe=False,
)
