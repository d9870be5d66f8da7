#    Copyright 2013-2025 ARM Limited
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#

"""
Harness configuration.

A configuration is a YAML file such as::

    AndroidTarget:
      emulator:
        connection_settings:
          device: emulator-5554
    test_apps:
      app_a:
        package: com.android.tests.fused.testapp.A
        apk: out/FuseDaemonTestAppA.apk
        version_code: 1
    polling:
      timeout: 10
      interval: 0.1
    response_timeout: 60

Every section is optional.
"""
import os

from fusedlib.apps import TestApp
from fusedlib.coordinator import DEFAULT_RESPONSE_TIMEOUT
from fusedlib.exception import HostError
from fusedlib.polling import PollingPolicy, DEFAULT_POLLING_POLICY
from fusedlib.target import AndroidTarget
from fusedlib.utils.misc import load_struct_from_yaml, get_logger

from typing import Any, Dict, List, Optional, Type


logger = get_logger('config')

TARGETS_KEY = 'AndroidTarget'


class HarnessConfig(object):
    """
    Parsed harness configuration.

    :param raw: The configuration structure, as loaded from YAML.
    :param base_dir: Directory relative APK paths are resolved against.
    """

    def __init__(self, raw: Optional[Dict[str, Any]] = None, base_dir: Optional[str] = None):
        raw = raw or {}
        if not isinstance(raw, dict):
            raise HostError('Harness configuration must be a mapping, got {}'.format(type(raw).__name__))
        self.raw = raw
        self.base_dir = base_dir or os.getcwd()

        self.target_settings: Dict[str, Dict[str, Any]] = {}
        for name, entry in (raw.get(TARGETS_KEY) or {}).items():
            self.target_settings[name] = dict((entry or {}).get('connection_settings') or {})

        self.test_apps: Dict[str, TestApp] = {}
        for name, entry in (raw.get('test_apps') or {}).items():
            self.test_apps[name] = self._parse_app(name, entry or {})

        polling = raw.get('polling')
        if polling:
            self.polling = PollingPolicy(float(polling.get('timeout', DEFAULT_POLLING_POLICY.timeout)),
                                         float(polling.get('interval', DEFAULT_POLLING_POLICY.interval)))
        else:
            self.polling = DEFAULT_POLLING_POLICY

        self.response_timeout: Optional[int] = raw.get('response_timeout', DEFAULT_RESPONSE_TIMEOUT)

    def _parse_app(self, name: str, entry: Dict[str, Any]) -> TestApp:
        try:
            package = entry['package']
            apk = entry['apk']
        except KeyError as e:
            raise HostError('Test app "{}" is missing "{}"'.format(name, e.args[0]))
        apk = os.path.expanduser(apk)
        if not os.path.isabs(apk):
            apk = os.path.join(self.base_dir, apk)
        return TestApp(name, package, apk, entry.get('version_code', 1))

    def get_app(self, name: str) -> TestApp:
        try:
            return self.test_apps[name]
        except KeyError:
            raise HostError('Unknown test app "{}"; known apps: {}'
                            .format(name, ', '.join(sorted(self.test_apps)) or 'none'))

    def build_targets(self, target_cls: Type[AndroidTarget] = AndroidTarget,
                      **kwargs) -> List[AndroidTarget]:
        """
        Instantiate one target per configured entry. ``kwargs`` are passed on
        to ``target_cls``.
        """
        targets = []
        for name, settings in self.target_settings.items():
            logger.debug('Building target "%s" with %s', name, settings)
            targets.append(target_cls(connection_settings=settings, **kwargs))
        return targets


def load_config(filepath: str) -> HarnessConfig:
    """
    :raises LoadSyntaxError: If the file is not valid YAML.
    """
    raw = load_struct_from_yaml(filepath)
    return HarnessConfig(raw, base_dir=os.path.dirname(os.path.abspath(filepath)))


def build_targets(config: HarnessConfig, **kwargs) -> List[AndroidTarget]:
    return config.build_targets(**kwargs)
