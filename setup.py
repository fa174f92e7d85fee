import os.path

from setuptools import find_packages, setup

try:
    # Import all script providers so that ENTRYPOINTS gets populated.
    from sdlib.scripts import jobs, logs, tools, units  # noqa: F401
    from sdlib.scripts.utils import ENTRYPOINTS
except ImportError:
    # Avoid chicken-and-egg dependency requirements during initial installation.
    # This means you need to re-run setup in order to gain script entrypoints.
    ENTRYPOINTS = []


README = os.path.join(os.path.abspath(os.path.dirname(__file__)), "README.rst")


setup(name="sdlib",
      version="0.3.0",
      description="Bounded-time control of systemd units and retrieval of journal entries.",
      long_description=open(README).read(),
      long_description_content_type="text/x-rst",
      platforms=["Linux"],
      python_requires=">=3.6",
      install_requires=["docopt"],
      packages=find_packages(exclude=["tests"]),
      entry_points={"console_scripts": ENTRYPOINTS})
