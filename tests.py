# coverage run --branch tests.py && coverage report -m
# or simply: pytest

import importlib.util
import inspect
import logging
import os
import pathlib
import sys
import unittest

def load_source ( module_name: str, path: str ):
	spec = importlib.util.spec_from_file_location ( module_name, path )
	module = importlib.util.module_from_spec ( spec )
	sys.modules[module_name] = module
	spec.loader.exec_module ( module )
	return module

logging.basicConfig (
	stream = sys.stdout,
	#level = logging.DEBUG,
	format = (
		'[%(name)s %(levelname)s] '
		'%(message)s'
	),
)

loader = unittest.TestLoader()
suite = unittest.TestSuite()

def look_for_tests ( path: str, prefix: str = '' ) -> None:
	for p in sorted ( pathlib.Path ( path ).glob ( '*_test.py' ) ):
		module_name = prefix + os.path.splitext ( p.name )[0]
		module = load_source ( module_name, str ( p ) )
		for attr in dir ( module ):
			if attr[0] == '_':
				continue
			x = getattr ( module, attr )
			if inspect.isclass ( x ) and issubclass ( x, unittest.TestCase ) and x.__module__ == module_name:
				suite.addTest ( loader.loadTestsFromTestCase ( x ) )

sys.path.insert ( 0, str ( pathlib.Path ( __file__ ).parent.absolute() ) )
look_for_tests ( 'tests', 'tests.' )

result = unittest.TextTestRunner ( verbosity = 1, failfast = True ).run ( suite )
sys.exit ( 0 if result.wasSuccessful() else 1 )
