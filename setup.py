import io
import re

from setuptools import find_packages, setup

__version__ = re.search(
    r'__version__\s*=\s*[\'"]([^\'"]*)[\'"]',
    io.open("src/fanout/version.py", encoding="utf_8_sig").read(),
).group(1)


setup(
    name="fanout-python",
    version=__version__,
    description="fanout is a Python library for running functions over payloads in isolated worker processes.",
    long_description="""fanout is a Python library for running functions over payloads in isolated worker processes, concurrently, and collecting their results or failures.""",
    author="",
    author_email="",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    zip_safe=False,
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        "cloudpickle",
        "orjson",
        "pydantic>=2",
        "pyzmq",
        "typing_extensions",
    ],
    extras_require={
        "tests": [
            "pytest",
        ],
    },
)
