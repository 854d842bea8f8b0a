import os
import sys
import unittest
import keyring
sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from config import YamlConfig, load_server_settings

class DummyKeyring(keyring.backend.KeyringBackend):
    priority = 1
    def __init__(self):
        self.store = {}
    def get_password(self, service, username):
        return self.store.get((service, username))
    def set_password(self, service, username, password):
        self.store[(service, username)] = password
    def delete_password(self, service, username):
        self.store.pop((service, username), None)

class SettingsEncryptionTest(unittest.TestCase):
    def setUp(self) -> None:
        keyring.set_keyring(DummyKeyring())
        os.environ['ENCRYPT_SETTINGS'] = '1'
        self.path = 'enc_hooplog.yaml'
        if os.path.exists(self.path):
            os.remove(self.path)

    def tearDown(self) -> None:
        if os.path.exists(self.path):
            os.remove(self.path)
        os.environ.pop('ENCRYPT_SETTINGS', None)

    def test_encrypt_and_load(self) -> None:
        cfg = YamlConfig(self.path)
        cfg.save({'jwt_secret': 'hunter2', 'db_path': 'court.db'})
        self.assertTrue(os.path.exists(self.path))
        with open(self.path, encoding='utf-8') as f:
            self.assertNotIn('hunter2', f.read())
        data = cfg.load()
        self.assertEqual(data['jwt_secret'], 'hunter2')
        self.assertEqual(data['db_path'], 'court.db')

    def test_server_settings_use_keyring_secret(self) -> None:
        YamlConfig(self.path).save({'jwt_secret': 'from-keyring', 'token_expire_days': 3})
        settings = load_server_settings(self.path)
        self.assertEqual(settings.jwt_secret, 'from-keyring')
        self.assertEqual(settings.token_expire_days, 3)

if __name__ == '__main__':
    unittest.main()
