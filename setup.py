from setuptools import setup

# import wakeguard.info without importing the package
info = {"__file__": "wakeguard/info.py"}

with open("wakeguard/info.py") as fp:
    exec(fp.read(), info)

version = ''
with open("wakeguard/VERSION", "r") as f:
    version = f.read().strip()

with open("README.md", "r") as f:
    long_description = f.read()

with open("requirements.txt") as f:
    requirements = [line.strip() for line in f if line.strip() and not line.startswith('#')]

setup(
    name=info['__package_name__'],
    version=version,
    description=info['__description__'],
    long_description=long_description,
    long_description_content_type="text/markdown",
    license=info['__license__'],
    author=info['__author__'],
    python_requires='>=3.10',
    install_requires=requirements,
    extras_require={
        'test': ['pytest>=7.0'],
    },
    packages=[
        'wakeguard',
        'wakeguard.libraries',
        'wakeguard.models',
        'wakeguard.services',
    ],
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: POSIX :: Linux",
        "License :: OSI Approved :: GNU General Public License v3 (GPLv3)",
        "Topic :: System :: Networking :: Monitoring",
    ],
    entry_points={
        'console_scripts': [
            'wakeguard = wakeguard:main',
        ],
    },
    include_package_data=True,
    package_data={
        'wakeguard': [
            'VERSION',
        ],
    },
)
